from __future__ import annotations

from pygame.math import Vector3
from pytest import approx

from biofilm.sim.core.config import SimulationConfig
from biofilm.sim.core.world import World
from biofilm.sim.systems import mechanics


def _world(**overrides) -> World:
    return World(SimulationConfig(**overrides), populate=False)


def _net(chain) -> Vector3:
    total = Vector3()
    for particle in chain.particles:
        total += particle.net_force
    return total


def test_axial_springs_at_rest_length_exert_no_force():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))

    mechanics.apply_axial_springs(world, chain, world.config.chain.rest_length)

    for particle in chain.particles:
        assert particle.net_force.length() == approx(0.0, abs=1e-9)


def test_stretched_springs_pull_ends_inward_and_balance():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))

    mechanics.apply_axial_springs(world, chain, 2.0)

    assert chain.head.net_force.x > 0.0
    assert chain.tail.net_force.x < 0.0
    assert _net(chain).length() == approx(0.0, abs=1e-9)


def test_reference_springs_are_not_balanced():
    world = _world(force_model="reference")
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))

    mechanics.apply_axial_springs(world, chain, 2.0)

    assert _net(chain).length() > 1.0


def test_straight_chain_has_no_bending_force():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))

    mechanics.apply_bending_springs(world, chain)

    for particle in chain.particles:
        assert particle.net_force.length() == approx(0.0, abs=1e-9)


def test_bent_chain_bending_forces_are_out_of_plane_and_balanced():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    chain.pivot.position.y += 1.0

    mechanics.apply_bending_springs(world, chain)

    assert any(abs(p.net_force.z) > 0.0 for p in chain.particles)
    for particle in chain.particles:
        assert particle.net_force.x == 0.0
        assert particle.net_force.y == 0.0
    assert _net(chain).z == approx(0.0, abs=1e-9)


def test_damping_opposes_chain_velocity():
    world = _world()
    chain = world.add_chain(100.0, 100.0, (1.0, 0.0))
    chain.velocity = Vector3(2.0, 0.0, 0.0)

    mechanics.apply_damping(world, chain)

    for particle in chain.particles:
        assert particle.net_force.x == approx(-2.0 * chain.friction)


def _head_to_head(world: World):
    left = world.add_chain(100.0, 100.0, (-1.0, 0.0))
    right = world.add_chain(105.0, 100.0, (1.0, 0.0))
    return left, right


def test_repulsion_is_equal_and_opposite():
    world = _world()
    left, right = _head_to_head(world)
    index = mechanics.build_particle_index(world.chains, world.config.chain.broad_phase_cell_size)

    checks = mechanics.accumulate_repulsion(world, left, index)
    assert mechanics.accumulate_repulsion(world, right, index) == 0

    assert checks > 0
    assert _net(left).x == approx(-3 * world.config.chain.repulsion_force)
    assert _net(right).x == approx(3 * world.config.chain.repulsion_force)
    assert _net(left).y == approx(0.0, abs=1e-6)


def test_reference_repulsion_pushes_chains_apart():
    world = _world(force_model="reference")
    left, right = _head_to_head(world)
    index = mechanics.build_particle_index(world.chains, world.config.chain.broad_phase_cell_size)

    mechanics.accumulate_repulsion(world, left, index)
    mechanics.accumulate_repulsion(world, right, index)

    assert _net(left).x < 0.0
    assert _net(right).x > 0.0


def test_distant_chains_do_not_interact():
    world = _world()
    left = world.add_chain(100.0, 100.0, (1.0, 0.0))
    world.add_chain(300.0, 300.0, (1.0, 0.0))
    index = mechanics.build_particle_index(world.chains, world.config.chain.broad_phase_cell_size)

    assert mechanics.accumulate_repulsion(world, left, index) == 0
    assert _net(left).length() == 0.0
