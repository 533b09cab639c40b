from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from pygame.math import Vector3

from ..utils.math3d import _trail_key


@dataclass(slots=True)
class TrailCell:
    count: int
    heading: Vector3


class TrailField:
    """Sparse record of lattice cells that chains have passed through.

    Cells are keyed by the integer-truncated (x, y) of the visit. The heading
    stored on first visit never changes; later visits only bump the count.
    """

    def __init__(self) -> None:
        self._cells: Dict[Tuple[int, int], TrailCell] = {}

    def __len__(self) -> int:
        return len(self._cells)

    def deposit(self, x: float, y: float, heading: Vector3) -> TrailCell:
        key = _trail_key(x, y)
        cell = self._cells.get(key)
        if cell is None:
            cell = TrailCell(count=1, heading=Vector3(heading))
            self._cells[key] = cell
        else:
            cell.count += 1
        return cell

    def lookup(self, x: float, y: float) -> Optional[TrailCell]:
        return self._cells.get(_trail_key(x, y))

    def clear(self) -> None:
        self._cells.clear()

    def cells(self) -> Iterator[Tuple[Tuple[int, int], int]]:
        for key, cell in self._cells.items():
            yield key, cell.count

    def export(self) -> List[Dict[str, float]]:
        return [
            {"x": x, "y": y, "count": cell.count, "hx": cell.heading.x, "hy": cell.heading.y, "hz": cell.heading.z}
            for (x, y), cell in self._cells.items()
        ]

    def load(self, cells: Dict[Tuple[int, int], TrailCell]) -> None:
        self._cells = dict(cells)
