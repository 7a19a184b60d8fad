"""Two-tier permission snapshot cache.

Per key (user, scope) the cache moves through
``MISS -> COMPUTING -> READY -> (EXPIRED | INVALIDATED) -> MISS``.

- Reads check the memory tier, then the durable tier, then compute.
- A miss starts exactly one computation per key; concurrent callers join the
  in-flight task through ``asyncio.shield`` so a cancelled caller never
  cancels the shared computation.
- Every user has a generation that invalidation bumps. A computation that
  finishes under a newer generation is discarded and recomputed, never
  served.
- Durable tier failures degrade the cache to memory-only for a cooldown
  period; they never fail a decision.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, Optional, Set, Tuple

from ....config.settings import AuthzSettings
from ....core.exceptions import StaleCacheRaceError
from ....utils import utc_now
from ...permissions.entities import EffectivePermissionSnapshot, ResolvedPermissions
from ..adapters.memory_tier import MemorySnapshotTier
from ..entities import CacheStats, SnapshotStore


logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]
ComputeFn = Callable[[], Awaitable[ResolvedPermissions]]


class SnapshotCache:
    """Memory + durable snapshot cache with single-flight computation."""

    def __init__(
        self,
        memory: MemorySnapshotTier,
        durable: Optional[SnapshotStore],
        settings: AuthzSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._memory = memory
        self._durable = durable
        self._settings = settings
        self._clock = clock

        self._inflight: Dict[CacheKey, "asyncio.Task[EffectivePermissionSnapshot]"] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._active_loads = 0
        self._stats = CacheStats()

        self._degraded_until: Optional[float] = None
        self._pending_purge: Set[str] = set()
        self._pending_clear = False

    # Reads

    async def get_or_compute(self, user_id: str, scope_key: str, compute: ComputeFn) -> EffectivePermissionSnapshot:
        """Return a live snapshot, computing it at most once per key."""
        snapshot = self._memory.get(user_id, scope_key, self._clock())
        if snapshot is not None:
            self._stats.memory_hits += 1
            return snapshot

        key = (user_id, scope_key)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(user_id, scope_key, compute))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            self._stats.joined_inflight += 1

        return await asyncio.shield(task)

    def peek(self, user_id: str, scope_key: str) -> Optional[EffectivePermissionSnapshot]:
        """Memory-tier lookup without computing."""
        return self._memory.get(user_id, scope_key, self._clock())

    def _release(self, key: CacheKey, task: "asyncio.Task[EffectivePermissionSnapshot]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the outcome as retrieved even if every waiter was cancelled
        if not task.cancelled():
            task.exception()

    def _generation(self, user_id: str) -> Tuple[int, int]:
        return (self._epoch, self._generations.get(user_id, 0))

    async def _load(self, user_id: str, scope_key: str, compute: ComputeFn) -> EffectivePermissionSnapshot:
        self._active_loads += 1
        try:
            return await self._load_snapshot(user_id, scope_key, compute)
        finally:
            self._active_loads -= 1

    async def _load_snapshot(self, user_id: str, scope_key: str, compute: ComputeFn) -> EffectivePermissionSnapshot:
        generation = self._generation(user_id)
        snapshot = await self._read_durable(user_id, scope_key)
        if snapshot is not None and self._generation(user_id) == generation:
            self._memory.set(snapshot)
            self._stats.durable_hits += 1
            return snapshot

        self._stats.misses += 1
        for attempt in range(1, self._settings.stale_retry_limit + 1):
            generation = self._generation(user_id)
            self._stats.computations += 1
            resolved = await compute()

            if self._generation(user_id) != generation:
                self._stats.stale_races += 1
                logger.warning(
                    f"Permission snapshot for user {user_id} invalidated during computation "
                    f"(attempt {attempt}), recomputing"
                )
                continue

            snapshot = EffectivePermissionSnapshot.from_resolved(
                resolved, self._clock(), self._settings.cache_ttl_seconds
            )
            self._memory.set(snapshot)
            await self._write_durable(snapshot, generation)
            return snapshot

        raise StaleCacheRaceError(
            f"Permission snapshot for user {user_id} kept changing during computation",
            details={"user_id": user_id, "scope_key": scope_key, "attempts": self._settings.stale_retry_limit},
        )

    # Durable tier

    def _durable_available(self) -> bool:
        if self._durable is None:
            return False
        if self._degraded_until is not None:
            if time.monotonic() < self._degraded_until:
                return False
            self._degraded_until = None
            logger.info("Retrying durable permission cache after degradation period")
        return True

    def _degrade(self, operation: str, error: BaseException) -> None:
        self._stats.durable_errors += 1
        self._degraded_until = time.monotonic() + self._settings.durable_retry_seconds
        logger.warning(
            f"Durable permission cache unavailable during {operation} "
            f"({type(error).__name__}: {error}); using memory-only caching for "
            f"{self._settings.durable_retry_seconds}s"
        )

    async def _durable_call(self, awaitable: Awaitable):
        return await asyncio.wait_for(awaitable, timeout=self._settings.store_timeout_seconds)

    async def _flush_pending_purges(self) -> bool:
        """Retry invalidations the durable tier missed. True when none remain."""
        try:
            if self._pending_clear:
                await self._durable_call(self._durable.clear())
                self._pending_clear = False
                self._pending_purge.clear()
            for user_id in list(self._pending_purge):
                await self._durable_call(self._durable.delete_user(user_id))
                self._pending_purge.discard(user_id)
        except Exception as e:
            self._degrade("pending invalidation", e)
            return False
        return True

    async def _read_durable(self, user_id: str, scope_key: str) -> Optional[EffectivePermissionSnapshot]:
        if not self._durable_available():
            return None
        if (self._pending_clear or self._pending_purge) and not await self._flush_pending_purges():
            return None

        try:
            snapshot = await self._durable_call(self._durable.get(user_id, scope_key))
        except Exception as e:
            self._degrade("read", e)
            return None

        if snapshot is None:
            return None
        if snapshot.is_expired(self._clock()):
            return None
        if snapshot.user_id != user_id or snapshot.scope_key != scope_key or not snapshot.verify_hash():
            self._stats.hash_mismatches += 1
            logger.warning(
                f"Discarding durable permission snapshot for user {user_id}: content hash mismatch"
            )
            await self._delete_durable(user_id)
            return None
        return snapshot

    async def _write_durable(self, snapshot: EffectivePermissionSnapshot, generation: Tuple[int, int]) -> None:
        if not self._durable_available():
            return
        try:
            await self._durable_call(self._durable.set(snapshot))
        except Exception as e:
            self._degrade("write", e)
            return

        if self._generation(snapshot.user_id) != generation:
            # An invalidation raced with the write; do not leave the old snapshot behind
            await self._delete_durable(snapshot.user_id)

    async def _delete_durable(self, user_id: str) -> int:
        if self._durable is None:
            return 0
        if not self._durable_available():
            self._pending_purge.add(user_id)
            return 0
        try:
            return await self._durable_call(self._durable.delete_user(user_id))
        except Exception as e:
            self._pending_purge.add(user_id)
            self._degrade("invalidate", e)
            return 0

    # Invalidation

    async def invalidate(self, user_id: str) -> int:
        """Remove every snapshot of a user from both tiers."""
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        removed = self._memory.delete_user(user_id)

        # Later callers must not join a computation that began before the write
        for key in [k for k in self._inflight if k[0] == user_id]:
            del self._inflight[key]

        self._stats.invalidations += 1
        removed += await self._delete_durable(user_id)
        logger.debug(f"Invalidated permission snapshots for user {user_id}")
        return removed

    async def invalidate_many(self, user_ids: Iterable[str]) -> int:
        removed = 0
        for user_id in dict.fromkeys(user_ids):
            removed += await self.invalidate(user_id)
        return removed

    async def clear(self) -> int:
        """Drop every snapshot of every user."""
        self._epoch += 1
        removed = self._memory.clear()
        self._inflight.clear()
        self._stats.invalidations += 1

        if self._durable is not None and not self._durable_available():
            self._pending_clear = True
        elif self._durable is not None:
            try:
                removed += await self._durable_call(self._durable.clear())
                self._pending_purge.clear()
            except Exception as e:
                self._pending_clear = True
                self._degrade("clear", e)

        logger.info(f"Cleared all permission snapshots ({removed} entries)")
        return removed

    def purge_expired(self) -> int:
        """Drop expired memory entries and forget idle invalidation generations.

        Nothing schedules this; the host application calls it periodically
        (e.g. once a minute) to keep memory bounded.
        """
        removed = self._memory.purge_expired(self._clock())
        # Generations are only compared by running loads, so with none running
        # every counter can restart from zero
        if self._active_loads == 0:
            self._generations.clear()
        return removed

    # Diagnostics

    @property
    def is_degraded(self) -> bool:
        return self._degraded_until is not None and time.monotonic() < self._degraded_until

    def stats(self) -> Dict[str, object]:
        self._stats.evictions = self._memory.evictions
        data = self._stats.to_dict()
        data.update(
            {
                "memory_size": len(self._memory),
                "inflight": len(self._inflight),
                "tracked_generations": len(self._generations),
                "durable_enabled": self._durable is not None,
                "durable_degraded": self.is_degraded,
                "ttl_seconds": self._settings.cache_ttl_seconds,
            }
        )
        return data
