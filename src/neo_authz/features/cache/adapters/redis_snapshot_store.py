"""
Redis durable tier for permission snapshots.

Each snapshot lives under its own key with a TTL matching the snapshot's
expiry; a per-user key set allows invalidating every scope of a user.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from ....config.constants import CacheKeys
from ...permissions.entities import EffectivePermissionSnapshot


logger = logging.getLogger(__name__)


class RedisSnapshotStore:
    """SnapshotStore backed by redis.asyncio."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "neo_authz"):
        self._redis = redis_client
        self._key_prefix = key_prefix

    def _snapshot_key(self, user_id: str, scope_key: str) -> str:
        return CacheKeys.SNAPSHOT.format(prefix=self._key_prefix, user_id=user_id, scope_key=scope_key)

    def _user_index_key(self, user_id: str) -> str:
        return CacheKeys.USER_INDEX.format(prefix=self._key_prefix, user_id=user_id)

    @property
    def _all_users_key(self) -> str:
        return CacheKeys.ALL_USERS.format(prefix=self._key_prefix)

    async def get(self, user_id: str, scope_key: str) -> Optional[EffectivePermissionSnapshot]:
        raw = await self._redis.get(self._snapshot_key(user_id, scope_key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return EffectivePermissionSnapshot.from_json(raw)

    async def set(self, snapshot: EffectivePermissionSnapshot) -> None:
        # Lifetime comes from the snapshot itself; the cache clock may differ from wall time
        ttl = int((snapshot.expires_at - snapshot.computed_at).total_seconds())
        if ttl <= 0:
            return

        key = self._snapshot_key(snapshot.user_id, snapshot.scope_key)
        index_key = self._user_index_key(snapshot.user_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.setex(key, ttl, snapshot.to_json())
            pipe.sadd(index_key, key)
            pipe.expire(index_key, ttl)
            pipe.sadd(self._all_users_key, snapshot.user_id)
            await pipe.execute()

    async def delete_user(self, user_id: str) -> int:
        index_key = self._user_index_key(user_id)
        keys = await self._redis.smembers(index_key)
        removed = 0
        if keys:
            removed = await self._redis.delete(*keys)
        await self._redis.delete(index_key)
        await self._redis.srem(self._all_users_key, user_id)
        return removed

    async def clear(self) -> int:
        user_ids = await self._redis.smembers(self._all_users_key)
        removed = 0
        for user_id in user_ids:
            if isinstance(user_id, bytes):
                user_id = user_id.decode("utf-8")
            removed += await self.delete_user(user_id)
        await self._redis.delete(self._all_users_key)
        logger.info(f"Cleared {removed} durable permission snapshots from Redis")
        return removed
