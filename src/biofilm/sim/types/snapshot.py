from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ..core.errors import SnapshotError

SNAPSHOT_FORMAT = 1


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    seed: int
    config_version: str
    force_model: str
    format: int = SNAPSHOT_FORMAT


@dataclass(slots=True)
class Snapshot:
    """Flat, JSON-compatible record of every chain, matrix particle and trail cell."""

    time: float
    next_bond_check_time: float
    next_id: int
    metadata: SnapshotMetadata
    chains: List[Dict[str, Any]] = field(default_factory=list)
    matrix: List[Dict[str, Any]] = field(default_factory=list)
    trail: List[Dict[str, Any]] = field(default_factory=list)
    rng_state: Optional[List[Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "next_bond_check_time": self.next_bond_check_time,
            "next_id": self.next_id,
            "metadata": asdict(self.metadata),
            "chains": self.chains,
            "matrix": self.matrix,
            "trail": self.trail,
            "rng_state": self.rng_state,
        }

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "Snapshot":
        if not isinstance(raw, dict):
            raise SnapshotError(f"Snapshot must be a mapping, got {type(raw).__name__}")
        missing = [key for key in ("time", "next_bond_check_time", "next_id", "metadata", "chains", "matrix", "trail") if key not in raw]
        if missing:
            raise SnapshotError(f"Snapshot is missing keys: {', '.join(missing)}")
        try:
            metadata = SnapshotMetadata(**raw["metadata"])
        except TypeError as exc:
            raise SnapshotError(f"Snapshot metadata is malformed: {exc}") from exc
        if metadata.format != SNAPSHOT_FORMAT:
            raise SnapshotError(f"Unsupported snapshot format {metadata.format}")
        for name in ("chains", "matrix", "trail"):
            if not isinstance(raw[name], list):
                raise SnapshotError(f"Snapshot field '{name}' must be a list")
        try:
            return Snapshot(
                time=float(raw["time"]),
                next_bond_check_time=float(raw["next_bond_check_time"]),
                next_id=int(raw["next_id"]),
                metadata=metadata,
                chains=list(raw["chains"]),
                matrix=list(raw["matrix"]),
                trail=list(raw["trail"]),
                rng_state=raw.get("rng_state"),
            )
        except (TypeError, ValueError) as exc:
            raise SnapshotError(f"Snapshot header is malformed: {exc}") from exc
