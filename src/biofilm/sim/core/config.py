from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

FORCE_MODELS = ("symmetric", "reference")

_TRANSVERSE_WIDTH = 0.6 * 16.6667


@dataclass
class ChainConfig:
    rest_length: float = 3.333333
    transverse_width: float = _TRANSVERSE_WIDTH
    spring_stiffness: float = 250.0 / (_TRANSVERSE_WIDTH * _TRANSVERSE_WIDTH)
    bending_stiffness: float = 20.0
    rest_angle: float = math.pi
    run_speed: float = 4.0
    initial_speed: float = 1.0
    tumble_torque: float = 10.0
    trail_torque_scale: float = 5.0
    initial_friction: float = 0.1
    division_friction_limit: float = 1.0
    growth_rate_mean: float = 3600.0
    growth_window_factor: float = 1.2
    emission_rate_divisor: float = 60.0
    emission_warmup: float = 1.0
    repulsion_force: float = 2000.0
    repulsion_reaction_factor: float = 10.0
    spring_reaction_factor: float = 2100.0
    broad_phase_cell_size: float = 20.0

    @property
    def sigma(self) -> float:
        return self.transverse_width

    @property
    def cutoff(self) -> float:
        return 2.0 ** (1.0 / 6.0) * self.sigma

    @property
    def max_rest_length(self) -> float:
        return 2.0 * self.rest_length


@dataclass
class MotilityConfig:
    run_mean: float = 0.1 * 60
    tumble_mean: float = 0.5 * 60


@dataclass
class MatrixConfig:
    sigma: float = 10.0
    epsilon: float = 0.5
    bond_probability: float = 0.1
    bond_check_mean: float = 0.3
    bond_warmup: float = 2.0
    matrix_bond_stiffness: float = 200.0
    chain_bond_stiffness: float = 100.0
    friction_increment: float = 0.00001
    repulsion_force: float = 12.0
    bond_force_beyond_cutoff: bool = False

    @property
    def cutoff(self) -> float:
        return 2.0 ** (1.0 / 6.0) * self.sigma


@dataclass
class SimulationConfig:
    time_step: float = 0.005
    seed: int = 42
    initial_population: int = 20
    max_initial_population: int = 500
    bounds: tuple[float, float, float, float] = (0.0, 600.0, 0.0, 600.0)
    force_model: str = "symmetric"
    division_enabled: bool = True
    motile: bool = True
    one_shot_division: bool = True
    spawn_clearance: float = 10.0
    spawn_attempts: int = 20
    config_version: str = "v1"
    chain: ChainConfig = field(default_factory=ChainConfig)
    motility: MotilityConfig = field(default_factory=MotilityConfig)
    matrix: MatrixConfig = field(default_factory=MatrixConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)

    @property
    def symmetric_forces(self) -> bool:
        return self.force_model == "symmetric"

    def validate(self) -> "SimulationConfig":
        problems = _collect_problems(self)
        if problems:
            message = "Invalid simulation configuration: " + "; ".join(problems)
            logger.error(message)
            raise ConfigError(message)
        return self


def is_positive(value: float) -> bool:
    """True for finite values above zero; NaN and infinities are rejected."""
    return math.isfinite(value) and value > 0.0


def bounds_problem(bounds) -> str | None:
    if len(bounds) != 4:
        return "bounds must be (x_min, x_max, y_min, y_max)"
    if not all(math.isfinite(value) for value in bounds):
        return f"bounds must be finite: {tuple(bounds)}"
    x_min, x_max, y_min, y_max = bounds
    if not (x_min < x_max and y_min < y_max):
        return f"bounds rectangle is empty: {tuple(bounds)}"
    return None


def _collect_problems(config: SimulationConfig) -> list[str]:
    problems: list[str] = []
    if not is_positive(config.time_step):
        problems.append(f"time_step must be positive (got {config.time_step})")
    if config.initial_population <= 0:
        problems.append(f"initial_population must be positive (got {config.initial_population})")
    elif config.initial_population > config.max_initial_population:
        problems.append(
            f"initial_population must not exceed {config.max_initial_population} (got {config.initial_population})"
        )
    problem = bounds_problem(config.bounds)
    if problem:
        problems.append(problem)
    if config.force_model not in FORCE_MODELS:
        problems.append(f"force_model must be one of {FORCE_MODELS} (got {config.force_model!r})")
    if config.spawn_attempts < 1:
        problems.append("spawn_attempts must be at least 1")

    chain = config.chain
    if not is_positive(chain.rest_length):
        problems.append("chain.rest_length must be positive")
    if not is_positive(chain.initial_friction):
        problems.append("chain.initial_friction must be positive")
    if not is_positive(chain.growth_rate_mean):
        problems.append("chain.growth_rate_mean must be positive")
    if not chain.broad_phase_cell_size >= chain.cutoff:
        problems.append("chain.broad_phase_cell_size must cover the repulsion cutoff")

    motility = config.motility
    if not is_positive(motility.run_mean):
        problems.append(f"motility.run_mean must be positive (got {motility.run_mean})")
    if not is_positive(motility.tumble_mean):
        problems.append(f"motility.tumble_mean must be positive (got {motility.tumble_mean})")

    matrix = config.matrix
    if not 0.0 <= matrix.bond_probability <= 1.0:
        problems.append(f"matrix.bond_probability must be within [0, 1] (got {matrix.bond_probability})")
    if not is_positive(matrix.bond_check_mean):
        problems.append("matrix.bond_check_mean must be positive")
    if not is_positive(matrix.sigma):
        problems.append("matrix.sigma must be positive")
    return problems


def load_config(raw: dict) -> SimulationConfig:
    def _section(name: str, cls):
        values = raw.get(name, {}) or {}
        try:
            return cls(**values)
        except TypeError as exc:
            raise ConfigError(f"Unknown setting in '{name}': {exc}") from exc

    chain = _section("chain", ChainConfig)
    motility = _section("motility", MotilityConfig)
    matrix = _section("matrix", MatrixConfig)
    sim_values = {k: v for k, v in raw.items() if k not in {"chain", "motility", "matrix"}}
    if "bounds" in sim_values:
        sim_values["bounds"] = tuple(float(v) for v in sim_values["bounds"])
    try:
        config = SimulationConfig(chain=chain, motility=motility, matrix=matrix, **sim_values)
    except TypeError as exc:
        raise ConfigError(f"Unknown simulation setting: {exc}") from exc
    return config.validate()
