from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pygame.math import Vector3

from .chain import CHAIN_LENGTH, Chain, MotilityState
from .config import SimulationConfig, bounds_problem, is_positive
from .errors import ConfigError, SnapshotError
from .matrix import MatrixParticle
from .particle import MassPoint
from .rng import DeterministicRng
from .trail import TrailCell, TrailField
from ..systems import bonding, lifecycle, mechanics, metrics as metrics_system, motility
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]


@dataclass(slots=True)
class PopulationDelta:
    """Chains admitted by division and parents retired in the same tick."""

    added: List[Chain] = field(default_factory=list)
    removed: List[Chain] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


class World:
    def __init__(self, config: SimulationConfig, rng: Optional[DeterministicRng] = None, populate: bool = True):
        config.validate()
        self._config = config
        self._rng = rng if rng is not None else DeterministicRng(config.seed)
        self._populate = populate
        self._trail = TrailField()
        self._chains: List[Chain] = []
        self._matrix: List[MatrixParticle] = []
        self._chains_by_id: Dict[int, Chain] = {}
        self._matrix_by_id: Dict[int, MatrixParticle] = {}
        self._birth_queue: List[Chain] = []
        self._removal_queue: List[Chain] = []
        self._last_delta = PopulationDelta()
        self._last_neighbor_checks = 0
        self._last_divisions = 0
        self._metrics: TickMetrics | None = None
        self._next_id = 0
        self._time = 0.0
        self._next_bond_check_time = 0.0
        if populate:
            self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def chains(self) -> List[Chain]:
        return self._chains

    @property
    def matrix_particles(self) -> List[MatrixParticle]:
        return self._matrix

    @property
    def trail(self) -> TrailField:
        return self._trail

    @property
    def time(self) -> float:
        return self._time

    @property
    def last_delta(self) -> PopulationDelta:
        return self._last_delta

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def matrix_positions(self) -> List[Tuple[float, float]]:
        return [(particle.position.x, particle.position.y) for particle in self._matrix]

    def reset(self) -> None:
        self._chains.clear()
        self._matrix.clear()
        self._chains_by_id.clear()
        self._matrix_by_id.clear()
        self._birth_queue.clear()
        self._removal_queue.clear()
        self._trail.clear()
        self._rng.reset()
        self._last_delta = PopulationDelta()
        self._last_neighbor_checks = 0
        self._last_divisions = 0
        self._metrics = None
        self._next_id = 0
        self._time = 0.0
        self._next_bond_check_time = 0.0
        if self._populate:
            self._bootstrap_population()

    # Settings that can change between ticks. Means are read at the next sample.

    def set_run_mean(self, seconds: float) -> None:
        if not is_positive(seconds):
            raise ConfigError(f"Run mean must be positive, got {seconds}")
        self._config.motility.run_mean = float(seconds)

    def set_tumble_mean(self, seconds: float) -> None:
        if not is_positive(seconds):
            raise ConfigError(f"Tumble mean must be positive, got {seconds}")
        self._config.motility.tumble_mean = float(seconds)

    def set_division_enabled(self, enabled: bool) -> None:
        self._config.division_enabled = bool(enabled)

    def set_motile(self, motile: bool) -> None:
        self._config.motile = bool(motile)

    def add_chain(
        self,
        x: float,
        y: float,
        direction: Vector3 | Tuple[float, float] = (1.0, 0.0),
        color: Tuple[int, int, int] = (0, 0, 150),
    ) -> Chain:
        """Place a new chain with its head at (x, y), extending along ``direction``."""
        heading = Vector3(direction[0], direction[1], 0.0)
        if heading.length_squared() == 0.0:
            raise ConfigError("Chain direction must be non-zero")
        heading.normalize_ip()
        velocity = heading * self._config.chain.initial_speed
        chain = lifecycle.spawn_chain(self, x, y, self._time, heading, velocity, color)
        self._admit(chain)
        return chain

    def add_matrix_particle(self, x: float, y: float) -> MatrixParticle:
        particle = MatrixParticle(position=Vector3(x, y, 0.0), id=self._allocate_id(), created_at=self._time)
        self._add_matrix_particle(particle)
        return particle

    def step(self, tick: int) -> TickMetrics:
        start = perf_counter()
        self.advance(self._config.time_step)
        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            self, tick, self._last_divisions, self._last_neighbor_checks, elapsed_ms
        )
        self._metrics = metrics
        return metrics

    def advance(self, dt: float, bounds: Optional[Bounds] = None) -> None:
        """Apply exactly one tick to every chain and matrix particle."""
        if not is_positive(dt):
            raise ConfigError(f"Time step must be positive, got {dt}")
        bounds = self._config.bounds if bounds is None else self._checked_bounds(bounds)
        now = self._time
        self._last_neighbor_checks = 0
        self._last_divisions = 0

        self._accumulate_chain_forces(now)
        for chain in self._chains:
            for particle in chain.particles:
                particle.integrate(dt)

        for chain in self._chains:
            if chain.running and self._config.motile:
                lifecycle.deposit_trail(self, chain)
                lifecycle.emit_matrix_particle(self, chain, now)
            if lifecycle.try_divide(self, chain, now):
                self._last_divisions += 1
            lifecycle.check_boundaries(self, chain, now, bounds)

        bonding.advance_matrix(self, now, dt)
        if now > self._next_bond_check_time:
            self._next_bond_check_time = now + self._rng.exponential(self._config.matrix.bond_check_mean)

        self._last_delta = self._commit_divisions()
        self._time = now + dt

    @staticmethod
    def _checked_bounds(bounds: Iterable[float]) -> Bounds:
        try:
            checked = tuple(float(value) for value in bounds)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Bounds must be four numbers, got {bounds!r}") from exc
        problem = bounds_problem(checked)
        if problem:
            raise ConfigError(problem)
        return checked

    def _accumulate_chain_forces(self, now: float) -> int:
        for chain in self._chains:
            chain.apply_pending_forces()
            rest_length = lifecycle.current_rest_length(self, chain, now)
            motility.update_motility_state(self, chain, now)
            trail_cell = motility.trail_cell_under_head(self, chain)
            motility.apply_motility_velocities(self, chain, trail_cell)
            mechanics.accumulate_internal_forces(self, chain, rest_length)

        if len(self._chains) > 1:
            index = mechanics.build_particle_index(self._chains, self._config.chain.broad_phase_cell_size)
            for chain in self._chains:
                self._last_neighbor_checks += mechanics.accumulate_repulsion(self, chain, index)
        return self._last_neighbor_checks

    def _commit_divisions(self) -> PopulationDelta:
        for chain in self._chains:
            if chain.divided and chain.daughters:
                self._birth_queue.extend(chain.daughters)
                self._removal_queue.append(chain)
        delta = PopulationDelta(added=list(self._birth_queue), removed=list(self._removal_queue))
        if not delta:
            return delta

        retired = {chain.id for chain in self._removal_queue}
        self._chains = [chain for chain in self._chains if chain.id not in retired]
        for chain_id in retired:
            self._chains_by_id.pop(chain_id, None)
        for chain in self._birth_queue:
            self._admit(chain)
        self._birth_queue.clear()
        self._removal_queue.clear()
        return delta

    def _bootstrap_population(self) -> None:
        x_min, x_max, y_min, y_max = self._config.bounds
        attempts = self._config.spawn_attempts
        placed = mechanics.build_particle_index(self._chains, self._config.chain.broad_phase_cell_size)
        for _ in range(self._config.initial_population):
            direction = self._rng.next_direction()
            velocity = direction * self._config.chain.initial_speed
            color = self._rng.next_color()
            chain = None
            for _ in range(attempts):
                x = self._rng.next_range(x_min, x_max)
                y = self._rng.next_range(y_min, y_max)
                if chain is None:
                    chain = lifecycle.spawn_chain(self, x, y, self._time, direction, velocity, color)
                else:
                    chain.lay_out(x, y, self._config.chain.rest_length)
                if lifecycle.spawn_is_clear(chain, placed, self._config.spawn_clearance):
                    break
            else:
                logger.debug("No clear spawn site for chain %d after %d attempts", chain.id, attempts)
            self._admit(chain)
            for ref in mechanics.particle_refs(chain):
                placed.insert(ref)
        logger.info("Seeded %d chains in %s", len(self._chains), self._config.bounds)

    def _admit(self, chain: Chain) -> None:
        self._chains.append(chain)
        self._chains_by_id[chain.id] = chain

    def _add_matrix_particle(self, particle: MatrixParticle) -> None:
        self._matrix.append(particle)
        self._matrix_by_id[particle.id] = particle

    def _matrix_site_taken(self, x: float, y: float) -> bool:
        for particle in self._matrix:
            if particle.position.x == x and particle.position.y == y:
                return True
        return False

    def _allocate_id(self) -> int:
        allocated = self._next_id
        self._next_id += 1
        return allocated

    # Snapshots

    def snapshot(self) -> Snapshot:
        metadata = SnapshotMetadata(
            sim_dt=self._config.time_step,
            seed=self._rng.seed,
            config_version=self._config.config_version,
            force_model=self._config.force_model,
        )
        return Snapshot(
            time=self._time,
            next_bond_check_time=self._next_bond_check_time,
            next_id=self._next_id,
            metadata=metadata,
            chains=[self._chain_snapshot(chain) for chain in self._chains],
            matrix=[self._matrix_snapshot(particle) for particle in self._matrix],
            trail=self._trail.export(),
            rng_state=self._rng.get_state(),
        )

    def restore(self, snapshot: Snapshot | Dict[str, Any]) -> None:
        """Replace the whole population with ``snapshot``.

        Everything is decoded before anything is replaced, so a rejected
        snapshot leaves the current population untouched.
        """
        if not isinstance(snapshot, Snapshot):
            snapshot = Snapshot.from_dict(snapshot)
        metadata = snapshot.metadata
        if metadata.force_model != self._config.force_model:
            logger.error(
                "Snapshot rejected; it was taken with the %r force model, this world uses %r",
                metadata.force_model,
                self._config.force_model,
            )
            raise SnapshotError(
                f"Snapshot force model {metadata.force_model!r} does not match {self._config.force_model!r}"
            )
        if metadata.sim_dt != self._config.time_step:
            logger.warning(
                "Snapshot was taken with time_step %s, this world steps %s", metadata.sim_dt, self._config.time_step
            )
        try:
            chains = [self._chain_from_record(record) for record in snapshot.chains]
            matrix = [self._matrix_from_record(record) for record in snapshot.matrix]
            trail = self._trail_from_records(snapshot.trail)
            if snapshot.rng_state is not None:
                DeterministicRng(self._rng.seed).set_state(snapshot.rng_state)
        except SnapshotError:
            logger.error("Snapshot rejected; keeping the current population")
            raise
        except (KeyError, TypeError, ValueError, IndexError) as exc:
            logger.error("Snapshot rejected; keeping the current population: %s", exc)
            raise SnapshotError(f"Malformed snapshot record: {exc!r}") from exc

        ids = [chain.id for chain in chains] + [particle.id for particle in matrix]
        if len(ids) != len(set(ids)):
            logger.error("Snapshot rejected; keeping the current population: duplicate ids")
            raise SnapshotError("Snapshot contains duplicate entity ids")

        self._chains = chains
        self._chains_by_id = {chain.id: chain for chain in chains}
        self._matrix = matrix
        self._matrix_by_id = {particle.id: particle for particle in matrix}
        self._trail.load(trail)
        if snapshot.rng_state is not None:
            self._rng.set_state(snapshot.rng_state)
        self._birth_queue.clear()
        self._removal_queue.clear()
        self._last_delta = PopulationDelta()
        self._time = snapshot.time
        self._next_bond_check_time = snapshot.next_bond_check_time
        self._next_id = max([snapshot.next_id] + [i + 1 for i in ids])
        logger.info(
            "Restored %d chains, %d matrix particles and %d trail cells at t=%.3f",
            len(chains),
            len(matrix),
            len(trail),
            self._time,
        )

    @staticmethod
    def _point_snapshot(point: MassPoint) -> Dict[str, float]:
        return {
            "x": point.position.x,
            "y": point.position.y,
            "z": point.position.z,
            "vx": point.velocity.x,
            "vy": point.velocity.y,
            "vz": point.velocity.z,
            "ax": point.acceleration.x,
            "ay": point.acceleration.y,
            "az": point.acceleration.z,
        }

    @staticmethod
    def _point_from_record(record: Dict[str, Any]) -> Tuple[Vector3, Vector3, Vector3]:
        return (
            Vector3(float(record["x"]), float(record["y"]), float(record.get("z", 0.0))),
            Vector3(float(record["vx"]), float(record["vy"]), float(record.get("vz", 0.0))),
            Vector3(float(record["ax"]), float(record["ay"]), float(record.get("az", 0.0))),
        )

    def _chain_snapshot(self, chain: Chain) -> Dict[str, Any]:
        return {
            "id": chain.id,
            "color": list(chain.color),
            "birth_time": chain.birth_time,
            "growth_rate": chain.growth_rate,
            "velocity": [chain.velocity.x, chain.velocity.y, chain.velocity.z],
            "direction": [chain.direction.x, chain.direction.y, chain.direction.z],
            "state": chain.state.value,
            "state_end_time": chain.state_end_time,
            "clockwise": chain.clockwise,
            "trail_clockwise": chain.trail_clockwise,
            "friction": chain.friction,
            "emission_interval": chain.emission_interval,
            "next_emission_time": chain.next_emission_time,
            "parent_id": chain.parent_id,
            "divided": chain.divided,
            "particles": [self._point_snapshot(particle) for particle in chain.particles],
            "pending_forces": [[f.x, f.y, f.z] for f in chain.pending_forces],
        }

    def _chain_from_record(self, record: Dict[str, Any]) -> Chain:
        particle_records = record["particles"]
        if len(particle_records) != CHAIN_LENGTH:
            raise SnapshotError(
                f"Chain {record.get('id')} has {len(particle_records)} particles, expected {CHAIN_LENGTH}"
            )
        particles = []
        for particle_record in particle_records:
            position, velocity, acceleration = self._point_from_record(particle_record)
            particles.append(MassPoint(position=position, velocity=velocity, acceleration=acceleration))
        pending_records = record.get("pending_forces") or [[0.0, 0.0, 0.0]] * CHAIN_LENGTH
        if len(pending_records) != CHAIN_LENGTH:
            raise SnapshotError(
                f"Chain {record.get('id')} has {len(pending_records)} pending forces, expected {CHAIN_LENGTH}"
            )
        pending_forces = [Vector3(*(float(v) for v in entry)) for entry in pending_records]
        try:
            state = MotilityState(record["state"])
        except ValueError as exc:
            raise SnapshotError(f"Unknown motility state {record['state']!r}") from exc
        color = tuple(int(channel) for channel in record["color"])
        if len(color) != 3:
            raise SnapshotError(f"Chain {record.get('id')} color must have three channels")
        parent_id = record.get("parent_id")
        return Chain(
            id=int(record["id"]),
            particles=particles,
            color=color,
            birth_time=float(record["birth_time"]),
            growth_rate=float(record["growth_rate"]),
            velocity=Vector3(*(float(v) for v in record["velocity"])),
            direction=Vector3(*(float(v) for v in record["direction"])),
            state=state,
            state_end_time=float(record["state_end_time"]),
            clockwise=bool(record["clockwise"]),
            trail_clockwise=bool(record["trail_clockwise"]),
            friction=float(record["friction"]),
            emission_interval=float(record["emission_interval"]),
            next_emission_time=float(record["next_emission_time"]),
            parent_id=None if parent_id is None else int(parent_id),
            divided=bool(record["divided"]),
            pending_forces=pending_forces,
        )

    def _matrix_snapshot(self, particle: MatrixParticle) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": particle.id, "created_at": particle.created_at}
        payload.update(self._point_snapshot(particle))
        payload["bonds"] = sorted([owner, index] for owner, index in particle.bonds)
        return payload

    def _matrix_from_record(self, record: Dict[str, Any]) -> MatrixParticle:
        position, velocity, acceleration = self._point_from_record(record)
        bonds = set()
        for entry in record["bonds"]:
            owner, index = entry
            bonds.add((int(owner), int(index)))
        return MatrixParticle(
            position=position,
            velocity=velocity,
            acceleration=acceleration,
            id=int(record["id"]),
            created_at=float(record["created_at"]),
            bonds=bonds,
        )

    @staticmethod
    def _trail_from_records(records: Iterable[Dict[str, Any]]) -> Dict[Tuple[int, int], TrailCell]:
        cells: Dict[Tuple[int, int], TrailCell] = {}
        for record in records:
            key = (int(record["x"]), int(record["y"]))
            count = int(record["count"])
            if count < 1:
                raise SnapshotError(f"Trail cell {key} has non-positive count {count}")
            heading = Vector3(float(record["hx"]), float(record["hy"]), float(record.get("hz", 0.0)))
            cells[key] = TrailCell(count=count, heading=heading)
        return cells
