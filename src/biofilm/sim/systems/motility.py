from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pygame.math import Vector3

from ..core.chain import Chain, MotilityState
from ..core.trail import TrailCell
from ..utils.math3d import _heading, _safe_normalize, _spin

if TYPE_CHECKING:
    from ..core.world import World


def start_running(world: World, chain: Chain, now: float) -> None:
    chain.state = MotilityState.RUNNING
    chain.state_end_time = now + world._rng.exponential(world._config.motility.run_mean)


def start_tumbling(world: World, chain: Chain, now: float) -> None:
    chain.state = MotilityState.TUMBLING
    chain.state_end_time = now + world._rng.exponential(world._config.motility.tumble_mean)


def update_motility_state(world: World, chain: Chain, now: float) -> None:
    """Draw this tick's rotation signs and flip run/tumble once the end time has passed."""
    chain.clockwise = world._rng.next_bool()
    if chain.state is MotilityState.RUNNING:
        if now > chain.state_end_time:
            start_tumbling(world, chain, now)
    elif now > chain.state_end_time:
        start_running(world, chain, now)
    chain.trail_clockwise = world._rng.next_bool()


def run_speed(world: World, chain: Chain) -> float:
    return world._config.chain.run_speed / chain.friction


def update_direction(world: World, chain: Chain) -> None:
    axis = chain.axis()
    speed = (_safe_normalize(chain.velocity) * run_speed(world, chain)).length()
    chain.velocity = axis * speed
    chain.direction = axis


def trail_cell_under_head(world: World, chain: Chain) -> Optional[TrailCell]:
    if not chain.running:
        return None
    head = chain.head.position
    return world._trail.lookup(head.x, head.y)


def apply_motility_velocities(world: World, chain: Chain, trail_cell: Optional[TrailCell] = None) -> None:
    """Assign this tick's kinematic velocity to every particle of ``chain``.

    Running propels along the axis, tumbling spins about the pivot, and a trail
    cell under the head overrides the run with an aligning spin. Velocities are
    zero when motility is disabled.
    """
    config = world._config
    motile = config.motile
    pivot = Vector3(chain.pivot.position)

    if chain.running:
        update_direction(world, chain)

    if not motile:
        for particle in chain.particles:
            particle.velocity = Vector3()
        return

    if chain.tumbling:
        angular = config.chain.tumble_torque if chain.clockwise else -config.chain.tumble_torque
        for particle in chain.particles:
            particle.velocity = _spin(particle.position - pivot, angular)
        return

    if trail_cell is not None:
        angular = _heading(trail_cell.heading) * config.chain.trail_torque_scale
        if not chain.trail_clockwise:
            angular = -angular
        for particle in chain.particles:
            particle.velocity = _spin(particle.position - pivot, angular)
        return

    propulsion = _safe_normalize(chain.velocity) * run_speed(world, chain)
    for particle in chain.particles:
        particle.velocity = Vector3(propulsion)
