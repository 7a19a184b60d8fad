"""PostgreSQL durable tier for permission snapshots.

Expects the ``user_permission_cache`` table::

    user_id      TEXT        NOT NULL
    scope_key    TEXT        NOT NULL
    content_hash VARCHAR(64) NOT NULL
    snapshot     JSONB       NOT NULL
    computed_at  TIMESTAMPTZ NOT NULL
    expires_at   TIMESTAMPTZ NOT NULL
    PRIMARY KEY (user_id, scope_key)
"""

import dataclasses
import logging
from typing import Optional

import asyncpg

from ...permissions.entities import EffectivePermissionSnapshot


logger = logging.getLogger(__name__)


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command status ('DELETE 3')."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class AsyncPGSnapshotStore:
    """SnapshotStore backed by an asyncpg connection pool."""

    def __init__(self, pool: asyncpg.Pool, table: str = "user_permission_cache"):
        if not table.replace("_", "").replace(".", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")
        self._pool = pool
        self._table = table

    async def get(self, user_id: str, scope_key: str) -> Optional[EffectivePermissionSnapshot]:
        query = f"""
            SELECT snapshot, content_hash
            FROM {self._table}
            WHERE user_id = $1 AND scope_key = $2
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, scope_key)

        if row is None:
            return None

        snapshot = EffectivePermissionSnapshot.from_json(row["snapshot"])
        # The column is authoritative; a mismatch with the payload is caught by hash verification
        return dataclasses.replace(snapshot, content_hash=row["content_hash"])

    async def set(self, snapshot: EffectivePermissionSnapshot) -> None:
        query = f"""
            INSERT INTO {self._table}
                (user_id, scope_key, content_hash, snapshot, computed_at, expires_at)
            VALUES ($1, $2, $3, $4::jsonb, $5, $6)
            ON CONFLICT (user_id, scope_key) DO UPDATE SET
                content_hash = EXCLUDED.content_hash,
                snapshot = EXCLUDED.snapshot,
                computed_at = EXCLUDED.computed_at,
                expires_at = EXCLUDED.expires_at
        """
        async with self._pool.acquire() as conn:
            await conn.execute(
                query,
                snapshot.user_id,
                snapshot.scope_key,
                snapshot.content_hash,
                snapshot.to_json(),
                snapshot.computed_at,
                snapshot.expires_at,
            )

    async def delete_user(self, user_id: str) -> int:
        async with self._pool.acquire() as conn:
            status = await conn.execute(f"DELETE FROM {self._table} WHERE user_id = $1", user_id)
        return _affected_rows(status)

    async def clear(self) -> int:
        async with self._pool.acquire() as conn:
            status = await conn.execute(f"DELETE FROM {self._table}")
        removed = _affected_rows(status)
        logger.info(f"Cleared {removed} durable permission snapshots")
        return removed
