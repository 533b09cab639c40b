from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    sim_time: float
    population: int
    divisions: int
    matrix_particles: int
    trail_cells: int
    bonds: int
    neighbor_checks: int
    average_friction: float
    tick_duration_ms: float = 0.0
