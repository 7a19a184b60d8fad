"""Protocols for the snapshot cache tiers."""

from typing import Optional, Protocol, runtime_checkable

from ...permissions.entities import EffectivePermissionSnapshot


@runtime_checkable
class SnapshotStore(Protocol):
    """Durable tier holding serialized permission snapshots.

    Implementations return what was stored; expiry and hash verification are
    the cache's job.
    """

    async def get(self, user_id: str, scope_key: str) -> Optional[EffectivePermissionSnapshot]:
        ...

    async def set(self, snapshot: EffectivePermissionSnapshot) -> None:
        ...

    async def delete_user(self, user_id: str) -> int:
        """Remove every snapshot of a user; returns the number removed."""
        ...

    async def clear(self) -> int:
        ...
