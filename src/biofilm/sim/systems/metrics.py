from __future__ import annotations

from typing import TYPE_CHECKING

from ..types.metrics import TickMetrics

if TYPE_CHECKING:
    from ..core.world import World


def count_bonds(world: World) -> int:
    return sum(len(particle.bonds) for particle in world._matrix)


def create_metrics(world: World, tick: int, divisions: int, neighbor_checks: int, elapsed_ms: float) -> TickMetrics:
    chains = world._chains
    population = len(chains)
    average_friction = sum(chain.friction for chain in chains) / population if population else 0.0
    return TickMetrics(
        tick=tick,
        sim_time=world.time,
        population=population,
        divisions=divisions,
        matrix_particles=len(world._matrix),
        trail_cells=len(world._trail),
        bonds=count_bonds(world),
        neighbor_checks=neighbor_checks,
        average_friction=average_friction,
        tick_duration_ms=elapsed_ms,
    )
