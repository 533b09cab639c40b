from __future__ import annotations

import math
import random

from pygame.math import Vector3

from .errors import ConfigError


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_bool(self) -> bool:
        return self._random.random() < 0.5

    def chance(self, probability: float) -> bool:
        if probability < 0.0 or probability > 1.0:
            raise ConfigError(f"Probability must be between 0.0 and 1.0, got {probability}")
        return self._random.random() < probability

    def exponential(self, mean: float) -> float:
        # Inverse CDF; 1 - U keeps the log argument in (0, 1].
        return -mean * math.log(1.0 - self._random.random())

    def next_direction(self) -> Vector3:
        x = self._random.random() - 0.5
        y = self._random.random() - 0.5
        magnitude = math.hypot(x, y)
        if magnitude == 0.0:
            return Vector3()
        return Vector3(x / magnitude, y / magnitude, 0.0)

    def next_color(self) -> tuple[int, int, int]:
        return (self._random.randrange(256), self._random.randrange(256), self._random.randrange(256))

    def get_state(self) -> list:
        version, internal, gauss_next = self._random.getstate()
        return [version, list(internal), gauss_next]

    def set_state(self, state: list) -> None:
        version, internal, gauss_next = state
        self._random.setstate((version, tuple(internal), gauss_next))
