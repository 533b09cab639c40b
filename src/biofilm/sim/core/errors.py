from __future__ import annotations


class ConfigError(ValueError):
    """Raised when a simulation setting is outside its accepted range."""


class SnapshotError(ValueError):
    """Raised when snapshot data cannot be turned back into a population."""
