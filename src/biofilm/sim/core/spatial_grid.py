from __future__ import annotations

import math
from typing import Dict, Generic, Iterable, List, Protocol, Tuple, TypeVar

from pygame.math import Vector3


class _Positioned(Protocol):
    position: Vector3


T = TypeVar("T", bound=_Positioned)

_BLOCK_OFFSETS: Tuple[Tuple[int, int], ...] = tuple((dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1))


class SpatialGrid(Generic[T]):
    """Uniform hash grid over anything with a ``position``.

    ``neighbors`` returns the contents of the 3x3 cell block around a point, a
    superset of everything within one cell width. ``get_neighbors`` returns only
    items within an exact radius. Both reuse one scratch list, so consume the
    result before the next query. Rebuild once per query batch.
    """

    def __init__(self, cell_size: float, items: Iterable[T] = ()) -> None:
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List[T]] = {}
        self._neighbor_scratch: List[T] = []
        self._active_keys: List[Tuple[int, int]] = []
        self.rebuild(items)

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cell_range = int(math.ceil(radius / self._cell_size))
        return [(dx, dy) for dx in range(-cell_range, cell_range + 1) for dy in range(-cell_range, cell_range + 1)]

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def rebuild(self, items: Iterable[T]) -> None:
        self.clear()
        for item in items:
            self.insert(item)

    def insert(self, item: T) -> None:
        key = self._cell_key(item.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket survived a clear(); mark it active again.
            self._active_keys.append(key)
        bucket.append(item)

    def neighbors(self, position: Vector3) -> List[T]:
        self._neighbor_scratch.clear()
        base_x, base_y = self._cell_key(position)
        cells = self._cells
        for dx, dy in _BLOCK_OFFSETS:
            bucket = cells.get((base_x + dx, base_y + dy))
            if bucket:
                self._neighbor_scratch.extend(bucket)
        return self._neighbor_scratch

    def get_neighbors(self, position: Vector3, radius: float) -> List[T]:
        self._neighbor_scratch.clear()
        base_x, base_y = self._cell_key(position)
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y

        for dx, dy in self.build_neighbor_cell_offsets(radius):
            bucket = self._cells.get((base_x + dx, base_y + dy))
            if not bucket:
                continue
            for item in bucket:
                pos = item.position
                offset_x = pos.x - pos_x
                offset_y = pos.y - pos_y
                if offset_x * offset_x + offset_y * offset_y <= radius_sq:
                    self._neighbor_scratch.append(item)
        return self._neighbor_scratch

    def _cell_key(self, position: Vector3) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))
