import csv
import json

import pytest

from biofilm.app.headless import _summary_stats, main, run_headless


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def test_headless_log_header_and_rows(tmp_path):
    log_path = tmp_path / "run.csv"
    run_headless(steps=3, seed=1, log_path=log_path, deterministic_log=True, initial_population=4)
    rows = _read_csv(log_path)
    assert len(rows) == 4
    assert rows[0] == [
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
    idx = {name: i for i, name in enumerate(rows[0])}
    first_row = rows[1]
    population = int(first_row[idx["population"]])
    checks = int(first_row[idx["neighbor_checks"]])
    assert population == 4
    assert float(first_row[idx["tick_ms"]]) == 0.0
    assert float(first_row[idx["neighbor_checks_per_chain"]]) == pytest.approx(checks / population, abs=1e-4)


def test_headless_deterministic_logs_match(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    run_headless(steps=5, seed=7, log_path=first, deterministic_log=True, initial_population=3)
    run_headless(steps=5, seed=7, log_path=second, deterministic_log=True, initial_population=3)
    assert first.read_text() == second.read_text()


def test_headless_summary_output(tmp_path):
    summary_path = tmp_path / "summary.json"
    run_headless(
        steps=4,
        seed=3,
        log_path=None,
        deterministic_log=True,
        summary_path=summary_path,
        summary_window=2,
        initial_population=3,
    )
    payload = json.loads(summary_path.read_text())
    assert payload["steps"] == 4
    assert payload["seed"] == 3
    assert payload["force_model"] == "symmetric"
    assert payload["population"]["max"] == 3.0
    assert "matrix_particles" in payload
    assert "neighbor_checks" in payload
    assert payload["tail_window"]["window"] == 2


def test_headless_snapshot_then_restore(tmp_path):
    snapshot_path = tmp_path / "state.json"
    world = run_headless(
        steps=5, seed=5, log_path=None, snapshot_path=snapshot_path, initial_population=3
    )
    payload = json.loads(snapshot_path.read_text())
    assert len(payload["chains"]) == len(world.chains)

    resumed = run_headless(steps=2, seed=5, log_path=None, restore_path=snapshot_path)
    assert resumed.time == pytest.approx(7 * 0.005)
    assert len(resumed.chains) == len(world.chains)


def test_headless_reads_yaml_config(tmp_path):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("initial_population: 2\nforce_model: reference\n")
    world = run_headless(steps=1, seed=None, log_path=None, config_path=config_path)
    assert len(world.chains) == 2
    assert world.config.force_model == "reference"


def test_main_parses_arguments(tmp_path):
    log_path = tmp_path / "cli.csv"
    main(["--steps", "2", "--population", "2", "--seed", "4", "--log", str(log_path), "--deterministic-log"])
    assert len(_read_csv(log_path)) == 3


def test_summary_stats_percentiles():
    stats = _summary_stats([4.0, 1.0, 3.0, 2.0])
    assert stats["min"] == 1.0
    assert stats["max"] == 4.0
    assert stats["avg"] == 2.5
    assert stats["p50"] == pytest.approx(2.5)
    assert _summary_stats([])["p99"] == 0.0
