from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World

logger = logging.getLogger(__name__)

_HEADER = [
    "tick",
    "sim_time",
    "population",
    "divisions",
    "matrix_particles",
    "trail_cells",
    "bonds",
    "avg_friction",
    "neighbor_checks",
    "tick_ms",
    "neighbor_checks_per_chain",
]


def _format_row(metrics: object, tick_ms: float) -> list[object]:
    population = metrics.population
    checks_per_chain = metrics.neighbor_checks / population if population > 0 else 0.0
    return [
        metrics.tick,
        f"{metrics.sim_time:.4f}",
        population,
        metrics.divisions,
        metrics.matrix_particles,
        metrics.trail_cells,
        metrics.bonds,
        f"{metrics.average_friction:.6f}",
        metrics.neighbor_checks,
        f"{tick_ms:.3f}",
        f"{checks_per_chain:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    total = sum(values)
    count = len(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(total / count),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def _load_config(config_path: Optional[Path]) -> SimulationConfig:
    if config_path is None:
        return SimulationConfig()
    logger.info("Loading configuration from %s", config_path)
    return SimulationConfig.from_yaml(config_path)


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    summary_path: Optional[Path] = None,
    summary_window: int = 5000,
    config_path: Optional[Path] = None,
    snapshot_path: Optional[Path] = None,
    restore_path: Optional[Path] = None,
    initial_population: Optional[int] = None,
) -> World:
    config = _load_config(config_path)
    if seed is not None:
        config.seed = seed
    if initial_population is not None:
        config.initial_population = initial_population
    world = World(config, populate=restore_path is None)

    if restore_path is not None:
        world.restore(json.loads(Path(restore_path).read_text()))

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    tick_ms_series: list[float] = []
    population_series: list[int] = []
    neighbor_checks_series: list[int] = []
    matrix_series: list[int] = []
    total_divisions = 0
    max_population = (-1, -1)

    try:
        for tick in range(steps):
            metrics = world.step(tick)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            total_divisions += metrics.divisions

            if summary_path:
                tick_ms_series.append(tick_ms)
                population_series.append(metrics.population)
                neighbor_checks_series.append(metrics.neighbor_checks)
                matrix_series.append(metrics.matrix_particles)
                if metrics.population > max_population[0]:
                    max_population = (metrics.population, tick)

            if writer:
                writer.writerow(_format_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    logger.info(
        "Ran %d steps: %d chains, %d matrix particles, %d divisions",
        steps,
        len(world.chains),
        len(world.matrix_particles),
        total_divisions,
    )

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "force_model": config.force_model,
            "deterministic_log": deterministic_log,
            "sim_time": world.time,
            "divisions": total_divisions,
            "tick_ms": _summary_stats(tick_ms_series),
            "population": _summary_stats([float(v) for v in population_series]),
            "matrix_particles": _summary_stats([float(v) for v in matrix_series]),
            "neighbor_checks": _summary_stats([float(v) for v in neighbor_checks_series]),
            "peaks": {
                "population": {"value": max_population[0], "tick": max_population[1]},
            },
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail_slice]),
                "population": _summary_stats([float(v) for v in population_series[tail_slice]]),
                "neighbor_checks": _summary_stats([float(v) for v in neighbor_checks_series[tail_slice]]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))

    if snapshot_path:
        Path(snapshot_path).write_text(json.dumps(world.snapshot().to_dict()))
        logger.info("Wrote snapshot to %s", snapshot_path)

    return world


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Headless biofilm simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--population", type=int, default=None, help="Number of chains to seed.")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=5000,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--snapshot", type=Path, default=None, help="Write a JSON snapshot after the run.")
    parser.add_argument("--restore", type=Path, default=None, help="Start from a JSON snapshot.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config_path=args.config,
        snapshot_path=args.snapshot,
        restore_path=args.restore,
        initial_population=args.population,
    )


if __name__ == "__main__":
    main()
