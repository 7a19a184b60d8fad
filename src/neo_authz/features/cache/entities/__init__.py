"""Snapshot cache entities and protocols."""

from .protocols import SnapshotStore
from .stats import CacheStats

__all__ = [
    "SnapshotStore",
    "CacheStats",
]
