"""Cache feature for neo-authz.

- entities/: cache protocols and counters
- adapters/: memory tier and durable tiers (PostgreSQL, Redis)
- services/: the two-tier snapshot cache
"""

from .entities import CacheStats, SnapshotStore
from .adapters import AsyncPGSnapshotStore, MemorySnapshotTier, RedisSnapshotStore
from .services import SnapshotCache

__all__ = [
    "CacheStats",
    "SnapshotStore",
    "AsyncPGSnapshotStore",
    "MemorySnapshotTier",
    "RedisSnapshotStore",
    "SnapshotCache",
]
