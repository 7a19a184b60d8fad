"""In-memory snapshot tier with LRU eviction.

Entries are keyed by (user_id, scope_key); a per-user index lets one
invalidation drop every scope of a user at once.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Optional, Set, Tuple

from ...permissions.entities import EffectivePermissionSnapshot


logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class MemorySnapshotTier:
    """Bounded in-process snapshot store."""

    def __init__(self, max_entries: int = 1000, eviction_ratio: float = 0.2):
        self._entries: "OrderedDict[CacheKey, EffectivePermissionSnapshot]" = OrderedDict()
        self._user_keys: Dict[str, Set[CacheKey]] = {}
        self._max_entries = max_entries
        self._eviction_ratio = eviction_ratio
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, user_id: str, scope_key: str, now: datetime) -> Optional[EffectivePermissionSnapshot]:
        key = (user_id, scope_key)
        snapshot = self._entries.get(key)
        if snapshot is None:
            return None
        if snapshot.is_expired(now):
            self._remove(key)
            return None
        self._entries.move_to_end(key)
        return snapshot

    def set(self, snapshot: EffectivePermissionSnapshot) -> None:
        key = (snapshot.user_id, snapshot.scope_key)
        self._entries[key] = snapshot
        self._entries.move_to_end(key)
        self._user_keys.setdefault(snapshot.user_id, set()).add(key)

        if len(self._entries) > self._max_entries:
            self._evict()

    def delete_user(self, user_id: str) -> int:
        keys = self._user_keys.pop(user_id, set())
        for key in keys:
            self._entries.pop(key, None)
        return len(keys)

    def clear(self) -> int:
        size = len(self._entries)
        self._entries.clear()
        self._user_keys.clear()
        return size

    def purge_expired(self, now: datetime) -> int:
        expired = [key for key, snapshot in self._entries.items() if snapshot.is_expired(now)]
        for key in expired:
            self._remove(key)
        if expired:
            logger.debug(f"Purged {len(expired)} expired permission snapshots")
        return len(expired)

    def _remove(self, key: CacheKey) -> None:
        self._entries.pop(key, None)
        user_keys = self._user_keys.get(key[0])
        if user_keys is not None:
            user_keys.discard(key)
            if not user_keys:
                del self._user_keys[key[0]]

    def _evict(self) -> None:
        # Drop the least recently used share of the cache in one pass
        to_remove = max(1, int(self._max_entries * self._eviction_ratio))
        for key in list(self._entries.keys())[:to_remove]:
            self._remove(key)
        self.evictions += to_remove
        logger.debug(f"Evicted {to_remove} least recently used permission snapshots")
