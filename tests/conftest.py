"""Pytest configuration and fixtures for neo-authz tests."""

import asyncio
import dataclasses
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from neo_authz.config.constants import OverrideAction
from neo_authz.config.settings import AuthzSettings
from neo_authz.features.cache import MemorySnapshotTier, SnapshotCache
from neo_authz.features.permissions.entities import (
    EffectivePermissionSnapshot,
    GrantOverride,
    Override,
    Permission,
    RegularRole,
    RevokeOverride,
    ResourceAccess,
    Role,
    RoleAssignment,
)
from neo_authz.features.permissions.repositories import TimedGrantRepository
from neo_authz.features.permissions.services import (
    AuthorizationService,
    EffectivePermissionResolver,
    GrantAccessors,
    PermissionCatalog,
    RoleGraphResolver,
)


NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryGrantStore:
    """GrantRepository and GrantWriter over plain Python containers.

    Counts every call per operation and can be told to fail or stall.
    """

    def __init__(self):
        self.roles: Dict[str, Role] = {}
        self.assignments: List[RoleAssignment] = []
        self.overrides: List[Override] = []
        self.resources: List[ResourceAccess] = []
        self.permissions: List[Permission] = []
        self.calls: Counter = Counter()

        self.fail_with: Optional[Exception] = None
        self.fail_times: Optional[int] = None
        self.write_error: Optional[Exception] = None
        self.delay = 0.0

    # Test helpers

    def add_role(self, role_id, permissions=(), parents=(), **kwargs) -> Role:
        role = Role(
            id=role_id,
            name=kwargs.pop("name", role_id),
            kind=kwargs.pop("kind", RegularRole(frozenset(permissions))),
            parent_role_ids=tuple(parents),
            **kwargs,
        )
        self.roles[role.id] = role
        return role

    def assign(self, user_id, role_id, **kwargs) -> RoleAssignment:
        assignment = RoleAssignment(user_id=user_id, role_id=role_id, **kwargs)
        self.assignments.append(assignment)
        return assignment

    def fail_next(self, times: int, error: Exception) -> None:
        self.fail_with = error
        self.fail_times = times

    @property
    def read_round_trips(self) -> int:
        return self.calls["get_role_assignments"]

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            error = self.fail_with
            if self.fail_times is not None:
                self.fail_times -= 1
                if self.fail_times <= 0:
                    self.fail_with = None
                    self.fail_times = None
            raise error

    async def _write(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.write_error is not None:
            raise self.write_error

    # GrantRepository

    async def get_role_assignments(self, user_id: str) -> List[RoleAssignment]:
        await self._enter("get_role_assignments")
        return [a for a in self.assignments if a.user_id == user_id]

    async def get_overrides(self, user_id: str, action: OverrideAction) -> List[Override]:
        await self._enter("get_overrides")
        action = OverrideAction(action)
        return [o for o in self.overrides if o.user_id == user_id and o.action is action]

    async def get_resource_access(self, user_id: str) -> List[ResourceAccess]:
        await self._enter("get_resource_access")
        return [r for r in self.resources if r.user_id == user_id]

    async def get_role(self, role_id: str) -> Optional[Role]:
        await self._enter("get_role")
        return self.roles.get(role_id)

    async def list_permissions(self) -> List[Permission]:
        await self._enter("list_permissions")
        return list(self.permissions)

    async def get_user_ids_with_role(self, role_id: str) -> List[str]:
        await self._enter("get_user_ids_with_role")
        return sorted({a.user_id for a in self.assignments if a.role_id == role_id})

    # GrantWriter

    async def assign_role(self, assignment: RoleAssignment, assigned_by: Optional[str] = None) -> None:
        await self._write("assign_role")
        self.assignments.append(assignment)

    async def remove_role_assignment(self, user_id, role_id, organization_id=None) -> bool:
        await self._write("remove_role_assignment")
        removed = False
        for index, a in enumerate(self.assignments):
            if a.user_id == user_id and a.role_id == role_id and a.is_active:
                if organization_id is None or a.organization_id == organization_id:
                    self.assignments[index] = dataclasses.replace(a, is_active=False)
                    removed = True
        return removed

    async def set_override(self, override: Override) -> None:
        await self._write("set_override")
        self.overrides = [
            o for o in self.overrides
            if not (o.user_id == override.user_id and o.permission_name == override.permission_name)
        ]
        self.overrides.append(override)

    async def clear_override(self, user_id: str, permission_name: str) -> bool:
        await self._write("clear_override")
        before = len(self.overrides)
        self.overrides = [
            o for o in self.overrides
            if not (o.user_id == user_id and o.permission_name == permission_name)
        ]
        return len(self.overrides) < before

    async def link_role_permission(self, role_id: str, permission_name: str) -> bool:
        await self._write("link_role_permission")
        role = self.roles[role_id]
        if permission_name in role.kind.permissions:
            return False
        kind = RegularRole(role.kind.permissions | {permission_name})
        self.roles[role_id] = dataclasses.replace(role, kind=kind)
        return True

    async def unlink_role_permission(self, role_id: str, permission_name: str) -> bool:
        await self._write("unlink_role_permission")
        role = self.roles[role_id]
        if permission_name not in role.kind.permissions:
            return False
        kind = RegularRole(role.kind.permissions - {permission_name})
        self.roles[role_id] = dataclasses.replace(role, kind=kind)
        return True

    async def add_role_parent(self, parent_role_id: str, child_role_id: str) -> bool:
        await self._write("add_role_parent")
        child = self.roles[child_role_id]
        if parent_role_id in child.parent_role_ids:
            return False
        self.roles[child_role_id] = dataclasses.replace(
            child, parent_role_ids=child.parent_role_ids + (parent_role_id,)
        )
        return True


class FakeDurableStore:
    """SnapshotStore kept in a dict; can be switched into failure mode."""

    def __init__(self):
        self.entries: Dict[tuple, EffectivePermissionSnapshot] = {}
        self.calls: Counter = Counter()
        self.fail = False

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.fail:
            raise ConnectionError("durable store down")

    async def get(self, user_id, scope_key):
        self._enter("get")
        return self.entries.get((user_id, scope_key))

    async def set(self, snapshot):
        self._enter("set")
        self.entries[(snapshot.user_id, snapshot.scope_key)] = snapshot

    async def delete_user(self, user_id):
        self._enter("delete_user")
        keys = [k for k in self.entries if k[0] == user_id]
        for key in keys:
            del self.entries[key]
        return len(keys)

    async def clear(self):
        self._enter("clear")
        count = len(self.entries)
        self.entries.clear()
        return count


@pytest.fixture
def clock():
    """Frozen clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def settings():
    """Settings with the durable tier disabled and fast retries."""
    return AuthzSettings(
        durable_backend="none",
        store_timeout_seconds=1.0,
        store_retry_attempts=2,
        store_retry_backoff_seconds=0,
        durable_retry_seconds=30,
    )


@pytest.fixture
def store():
    return InMemoryGrantStore()


@pytest.fixture
def durable_store():
    return FakeDurableStore()


@pytest.fixture
def catalog():
    """Catalog with a small device/maintenance permission set."""
    catalog = PermissionCatalog(hidden_permissions=["system.admin"])
    catalog.register_many([
        Permission("device.read", category="devices", priority=10),
        Permission("device.update", category="devices", priority=5, depends_on=("device.read",)),
        Permission("device.delete", category="devices", priority=1, depends_on=("device.update",)),
        Permission("maintenance.read", category="maintenance"),
        Permission("document.update", category="documents"),
        Permission("system.admin", category="system", is_system=True),
    ])
    return catalog


@pytest.fixture
def make_cache(settings, clock):
    """Factory for snapshot caches sharing the test settings and clock."""
    def _make(durable=None, **overrides) -> SnapshotCache:
        cache_settings = settings.model_copy(update=overrides) if overrides else settings
        return SnapshotCache(
            memory=MemorySnapshotTier(max_entries=cache_settings.memory_max_entries),
            durable=durable,
            settings=cache_settings,
            clock=clock,
        )
    return _make


@pytest.fixture
def make_service(store, catalog, settings, clock, make_cache):
    """Factory for a fully wired AuthorizationService over the in-memory store."""
    def _make(durable=None, writer=store, **overrides) -> AuthorizationService:
        service_settings = settings.model_copy(update=overrides) if overrides else settings
        repository = TimedGrantRepository(store, service_settings.store_timeout_seconds)
        role_graph = RoleGraphResolver(repository, catalog)
        resolver = EffectivePermissionResolver(GrantAccessors(repository), role_graph, catalog, clock=clock)
        return AuthorizationService(
            resolver=resolver,
            cache=make_cache(durable=durable, **overrides),
            catalog=catalog,
            role_graph=role_graph,
            repository=repository,
            settings=service_settings,
            writer=writer,
        )
    return _make


@pytest.fixture
def nurse_store(store):
    """User U with the Nurse role, a device.update grant and a maintenance.read revoke."""
    store.add_role("nurse", permissions=["device.read", "maintenance.read"], name="Nurse")
    store.assign("user-u", "nurse", valid_from=NOW - timedelta(days=1))
    store.overrides.append(GrantOverride(user_id="user-u", permission_name="device.update"))
    store.overrides.append(RevokeOverride(user_id="user-u", permission_name="maintenance.read"))
    return store
