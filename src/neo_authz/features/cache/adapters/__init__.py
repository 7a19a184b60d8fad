"""Snapshot cache tiers."""

from .memory_tier import MemorySnapshotTier
from .asyncpg_snapshot_store import AsyncPGSnapshotStore
from .redis_snapshot_store import RedisSnapshotStore

__all__ = [
    "MemorySnapshotTier",
    "AsyncPGSnapshotStore",
    "RedisSnapshotStore",
]
