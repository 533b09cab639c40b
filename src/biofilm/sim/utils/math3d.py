from __future__ import annotations

import math

from pygame.math import Vector3


def _safe_normalize(vector: Vector3) -> Vector3:
    return _safe_normalize_xyz(vector.x, vector.y, vector.z)


def _safe_normalize_xyz(x: float, y: float, z: float) -> Vector3:
    magnitude_sq = x * x + y * y + z * z
    if magnitude_sq == 0.0:
        return Vector3()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector3(x * inv, y * inv, z * inv)


def _heading(vector: Vector3) -> float:
    return math.atan2(vector.y, vector.x)


def _unit(radians: float) -> Vector3:
    return Vector3(math.cos(radians), math.sin(radians), 0.0)


def _perpendicular(vector: Vector3) -> Vector3:
    """In-plane left normal of ``vector``, normalized."""
    return _safe_normalize_xyz(-vector.y, vector.x, 0.0)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))


def _angle_between(a: Vector3, b: Vector3) -> float:
    magnitude_product = a.length() * b.length()
    if magnitude_product == 0.0:
        return 0.0
    cos_theta = _clamp_value(a.dot(b) / magnitude_product, -1.0, 1.0)
    return math.acos(cos_theta)


def _spin(offset: Vector3, angular: float) -> Vector3:
    """Velocity of a point at ``offset`` rotating about the z axis: offset x (0, 0, angular)."""
    return Vector3(offset.y * angular, -offset.x * angular, 0.0)


def _trail_key(x: float, y: float) -> tuple[int, int]:
    return (int(x), int(y))
