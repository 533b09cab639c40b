from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from pygame.math import Vector3

from ..core.chain import Chain, build_particles
from ..core.matrix import MatrixParticle
from ..core.spatial_grid import SpatialGrid
from ..utils.math3d import _perpendicular, _safe_normalize
from .mechanics import ParticleRef, build_particle_index
from .motility import start_running

if TYPE_CHECKING:
    from ..core.world import World

logger = logging.getLogger(__name__)


def current_rest_length(world: World, chain: Chain, now: float) -> float:
    params = world._config.chain
    growth = min(now - chain.birth_time, params.growth_window_factor * chain.growth_rate)
    return min(params.rest_length + growth, params.max_rest_length)


def spawn_chain(
    world: World,
    head_x: float,
    head_y: float,
    now: float,
    direction: Vector3,
    velocity: Vector3,
    color: tuple[int, int, int],
    parent_id: Optional[int] = None,
) -> Chain:
    params = world._config.chain
    growth_rate = world._rng.exponential(params.growth_rate_mean)
    chain = Chain(
        id=world._allocate_id(),
        particles=build_particles(head_x, head_y, direction, params.rest_length, velocity),
        color=color,
        birth_time=now,
        growth_rate=growth_rate,
        velocity=Vector3(velocity),
        direction=_safe_normalize(velocity),
        friction=params.initial_friction,
        emission_interval=growth_rate / params.emission_rate_divisor,
        parent_id=parent_id,
    )
    start_running(world, chain, now)
    return chain


def spawn_is_clear(chain: Chain, index: SpatialGrid[ParticleRef], clearance: float) -> bool:
    """True when no particle of ``chain`` lies within ``clearance`` of another chain in ``index``.

    The chain's parent is ignored so that daughters may start inside it.
    """
    clearance_sq = clearance * clearance
    for mine in chain.particles:
        for ref in index.get_neighbors(mine.position, clearance):
            other = ref.chain
            if other is chain or other.id == chain.parent_id:
                continue
            if mine.position.distance_squared_to(ref.position) < clearance_sq:
                return False
    return True


def deposit_trail(world: World, chain: Chain) -> None:
    pivot = chain.pivot
    world._trail.deposit(pivot.position.x, pivot.position.y, _safe_normalize(pivot.velocity))


def emit_matrix_particle(world: World, chain: Chain, now: float) -> Optional[MatrixParticle]:
    if now <= chain.next_emission_time or now <= world._config.chain.emission_warmup:
        return None
    pivot = chain.pivot.position
    if world._matrix_site_taken(pivot.x, pivot.y):
        return None
    particle = MatrixParticle(position=Vector3(pivot.x, pivot.y, 0.0), id=world._allocate_id(), created_at=now)
    world._add_matrix_particle(particle)
    chain.next_emission_time = now + chain.emission_interval
    return particle


def can_divide(world: World, chain: Chain, now: float) -> bool:
    config = world._config
    if not config.division_enabled:
        return False
    if config.one_shot_division and chain.divided:
        return False
    if chain.friction >= config.chain.division_friction_limit:
        return False
    return current_rest_length(world, chain, now) >= config.chain.max_rest_length


def try_divide(world: World, chain: Chain, now: float) -> bool:
    """Split a fully grown chain into two daughters beside its head.

    The daughters are stored on ``chain.daughters``; the world admits them and
    drops the parent when it commits the tick.
    """
    if not can_divide(world, chain, now):
        return False

    chain.divided = True
    head = chain.head.position
    direction = _safe_normalize(chain.direction)
    offset = _perpendicular(direction) * (world._config.chain.transverse_width / 2.0)
    index = None
    if logger.isEnabledFor(logging.DEBUG):
        index = build_particle_index(world._chains, world._config.chain.broad_phase_cell_size)

    for side in (1.0, -1.0):
        daughter = spawn_chain(
            world,
            head.x + offset.x * side,
            head.y + offset.y * side,
            now,
            direction,
            direction,
            chain.color,
            parent_id=chain.id,
        )
        if index is not None and not spawn_is_clear(daughter, index, world._config.spawn_clearance):
            logger.debug("Daughter %d of chain %d overlaps a neighbour at spawn", daughter.id, chain.id)
        chain.daughters.append(daughter)

    logger.debug("Chain %d divided at t=%.3f into %s", chain.id, now, [d.id for d in chain.daughters])
    return True


def check_boundaries(world: World, chain: Chain, now: float, bounds: tuple[float, float, float, float]) -> bool:
    """Re-lay the chain from the opposite edge when its head leaves ``bounds``."""
    x_min, x_max, y_min, y_max = bounds
    spacing = current_rest_length(world, chain, now)
    moved = False

    head = chain.head.position
    if head.x > x_max:
        chain.lay_out(x_min, head.y, spacing)
        moved = True
    elif head.x < x_min:
        chain.lay_out(x_max, head.y, spacing)
        moved = True

    head = chain.head.position
    if head.y > y_max:
        chain.lay_out(head.x, y_min, spacing)
        moved = True
    elif head.y < y_min:
        chain.lay_out(head.x, y_max, spacing)
        moved = True
    return moved
