from __future__ import annotations

import math

from pygame.math import Vector3
from pytest import approx

from biofilm.sim.core.chain import MotilityState
from biofilm.sim.core.config import SimulationConfig
from biofilm.sim.core.world import World
from biofilm.sim.systems import motility


def _world(**overrides) -> World:
    return World(SimulationConfig(**overrides), populate=False)


def test_new_chain_starts_running():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    assert chain.state is MotilityState.RUNNING
    assert chain.state_end_time > 0.0


def test_running_chain_moves_along_axis_at_run_speed():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))

    motility.apply_motility_velocities(world, chain)

    expected = world.config.chain.run_speed / chain.friction
    for particle in chain.particles:
        assert particle.velocity.x == approx(expected)
        assert particle.velocity.y == approx(0.0)


def test_tumbling_chain_spins_about_pivot():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    chain.state = MotilityState.TUMBLING
    chain.clockwise = True

    motility.apply_motility_velocities(world, chain)

    assert chain.pivot.velocity.length() == approx(0.0)
    head_offset = chain.head.position - chain.pivot.position
    assert chain.head.velocity.length() == approx(head_offset.length() * world.config.chain.tumble_torque)
    assert chain.head.velocity.dot(head_offset) == approx(0.0, abs=1e-9)


def test_immotile_chain_has_zero_velocity():
    world = _world(motile=False)
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))

    motility.apply_motility_velocities(world, chain)

    for particle in chain.particles:
        assert particle.velocity.length() == 0.0


def test_trail_under_head_overrides_run_with_spin():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    chain.trail_clockwise = True
    world.trail.deposit(chain.head.position.x, chain.head.position.y, Vector3(0.0, 1.0, 0.0))

    cell = motility.trail_cell_under_head(world, chain)
    assert cell is not None
    motility.apply_motility_velocities(world, chain, cell)

    angular = math.pi / 2 * world.config.chain.trail_torque_scale
    head_offset = chain.head.position - chain.pivot.position
    assert chain.pivot.velocity.length() == approx(0.0)
    assert chain.head.velocity.length() == approx(head_offset.length() * angular)


def test_tumbling_chain_ignores_trail():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    world.trail.deposit(chain.head.position.x, chain.head.position.y, Vector3(0.0, 1.0, 0.0))
    chain.state = MotilityState.TUMBLING

    assert motility.trail_cell_under_head(world, chain) is None


def test_state_flips_once_end_time_passes():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    chain.state_end_time = 0.5

    motility.update_motility_state(world, chain, 0.4)
    assert chain.state is MotilityState.RUNNING

    motility.update_motility_state(world, chain, 1.0)
    assert chain.state is MotilityState.TUMBLING
    assert chain.state_end_time > 1.0

    chain.state_end_time = 1.5
    motility.update_motility_state(world, chain, 2.0)
    assert chain.state is MotilityState.RUNNING


def test_run_mean_change_applies_to_next_sample():
    fast = _world(seed=3)
    slow = _world(seed=3)
    fast_chain = fast.add_chain(100.0, 100.0, (1.0, 0.0))
    slow_chain = slow.add_chain(100.0, 100.0, (1.0, 0.0))
    fast.set_run_mean(1.0)
    slow.set_run_mean(2.0)

    motility.start_running(fast, fast_chain, 10.0)
    motility.start_running(slow, slow_chain, 10.0)

    assert slow_chain.state_end_time - 10.0 == approx(2.0 * (fast_chain.state_end_time - 10.0))
