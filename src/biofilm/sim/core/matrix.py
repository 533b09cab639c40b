from __future__ import annotations

from dataclasses import dataclass, field
from typing import Set, Tuple

from .particle import MassPoint

# (owner id, particle index); matrix particles use index 0.
BondKey = Tuple[int, int]


@dataclass(slots=True)
class MatrixParticle(MassPoint):
    id: int = -1
    created_at: float = 0.0
    bonds: Set[BondKey] = field(default_factory=set)

    @property
    def key(self) -> BondKey:
        return (self.id, 0)

    def bond(self, key: BondKey) -> bool:
        if key in self.bonds:
            return False
        self.bonds.add(key)
        return True

    def is_bonded(self, key: BondKey) -> bool:
        return key in self.bonds
