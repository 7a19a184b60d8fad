"""Authorization facade.

The single entry point for permission checks. Decisions are read from the
snapshot cache; a miss resolves the user's grants through the resolver.

Checks never raise for "not authorized" and fail closed on any
infrastructure error. Write wrappers commit through the GrantWriter first
and only then invalidate, so no reader observes a stale snapshot after a
completed mutation.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from ....config.settings import AuthzSettings
from ....core.exceptions import ConfigurationError, RoleNotFoundError, StoreUnavailableError
from ....core.value_objects import AuthorizationContext, Identifier, normalize_id, scope_key_for
from ...cache.services import SnapshotCache
from ..entities import (
    EffectivePermissionSnapshot,
    GrantOverride,
    GrantRepository,
    GrantWriter,
    RevokeOverride,
    RoleAssignment,
    split_permission_name,
)
from .catalog import PermissionCatalog
from .resolver import EffectivePermissionResolver, resource_access_allows
from .role_graph import RoleGraphResolver


logger = logging.getLogger(__name__)


class AuthorizationService:
    """Permission checks, effective permission reads and cache invalidation."""

    def __init__(
        self,
        resolver: EffectivePermissionResolver,
        cache: SnapshotCache,
        catalog: PermissionCatalog,
        role_graph: RoleGraphResolver,
        repository: GrantRepository,
        settings: AuthzSettings,
        writer: Optional[GrantWriter] = None,
    ):
        self._resolver = resolver
        self._cache = cache
        self._catalog = catalog
        self._role_graph = role_graph
        self._repository = repository
        self._settings = settings
        self._writer = writer
        self._decisions: Dict[str, int] = {"allowed": 0, "denied": 0, "failed_closed": 0}

    @property
    def catalog(self) -> PermissionCatalog:
        return self._catalog

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    # Checks

    async def has_permission(
        self,
        user_id: Identifier,
        permission_name: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[Identifier] = None,
        context: Optional[AuthorizationContext] = None,
    ) -> bool:
        """Check a single permission, falling back to resource ACLs when given.

        Returns False on any infrastructure failure (fail closed).
        """
        user_id = normalize_id(user_id)
        snapshot = await self._snapshot_or_none(user_id, permission_name, context)
        if snapshot is None:
            return False
        return self._record(user_id, permission_name, self._allows(snapshot, permission_name, resource_type, resource_id))

    async def has_any_permission(
        self,
        user_id: Identifier,
        permission_names: Sequence[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[Identifier] = None,
        context: Optional[AuthorizationContext] = None,
    ) -> bool:
        """True if at least one permission is held; an empty list is never satisfied."""
        if not permission_names:
            return False
        user_id = normalize_id(user_id)
        label = ",".join(permission_names)
        snapshot = await self._snapshot_or_none(user_id, label, context)
        if snapshot is None:
            return False
        allowed = any(self._allows(snapshot, name, resource_type, resource_id) for name in permission_names)
        return self._record(user_id, label, allowed)

    async def has_all_permissions(
        self,
        user_id: Identifier,
        permission_names: Sequence[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[Identifier] = None,
        context: Optional[AuthorizationContext] = None,
    ) -> bool:
        """True if every permission is held; an empty list is trivially satisfied."""
        if not permission_names:
            return True
        user_id = normalize_id(user_id)
        label = ",".join(permission_names)
        snapshot = await self._snapshot_or_none(user_id, label, context)
        if snapshot is None:
            return False
        allowed = all(self._allows(snapshot, name, resource_type, resource_id) for name in permission_names)
        return self._record(user_id, label, allowed)

    async def has_role(
        self,
        user_id: Identifier,
        role_id: Identifier,
        context: Optional[AuthorizationContext] = None,
    ) -> bool:
        """Check that the user holds an active assignment to the role in this context.

        Only direct assignments count, not roles reached through inheritance.
        Returns False on any infrastructure failure (fail closed).
        """
        user_id, role_id = normalize_id(user_id), normalize_id(role_id)
        label = f"role:{role_id}"
        snapshot = await self._snapshot_or_none(user_id, label, context)
        if snapshot is None:
            return False
        return self._record(user_id, label, snapshot.has_role(role_id))

    async def get_effective_permissions(
        self,
        user_id: Identifier,
        context: Optional[AuthorizationContext] = None,
    ) -> EffectivePermissionSnapshot:
        """Return the user's effective permission snapshot.

        Raises:
            StoreUnavailableError: if the grant store stays unavailable after retries
        """
        user_id = normalize_id(user_id)
        scope_key = scope_key_for(context)
        attempts = self._settings.store_retry_attempts

        for attempt in range(1, attempts + 1):
            try:
                return await self._cache.get_or_compute(
                    user_id, scope_key, lambda: self._resolver.resolve(user_id, context)
                )
            except StoreUnavailableError as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Grant store unavailable resolving permissions for user {user_id} "
                    f"(attempt {attempt}/{attempts}): {e.message}"
                )
                await asyncio.sleep(self._settings.store_retry_backoff_seconds * attempt)

        raise StoreUnavailableError(f"No attempts made to resolve permissions for user {user_id}")

    async def _snapshot_or_none(
        self,
        user_id: str,
        permission_label: str,
        context: Optional[AuthorizationContext],
    ) -> Optional[EffectivePermissionSnapshot]:
        try:
            return await self.get_effective_permissions(user_id, context)
        except Exception as e:
            self._decisions["failed_closed"] += 1
            logger.error(
                f"Permission check failed closed: user={user_id} permission={permission_label} "
                f"error={type(e).__name__}: {e}"
            )
            return None

    @staticmethod
    def _allows(
        snapshot: EffectivePermissionSnapshot,
        permission_name: str,
        resource_type: Optional[str],
        resource_id: Optional[Identifier],
    ) -> bool:
        if snapshot.has_permission(permission_name):
            return True
        if resource_type is None or resource_id is None:
            return False
        return resource_access_allows(snapshot, permission_name, resource_type, str(resource_id))

    def _record(self, user_id: str, permission_label: str, allowed: bool) -> bool:
        self._decisions["allowed" if allowed else "denied"] += 1
        logger.debug(f"Permission {'granted' if allowed else 'denied'}: user={user_id} permission={permission_label}")
        return allowed

    # Invalidation

    async def invalidate(self, user_id: Identifier) -> int:
        return await self._cache.invalidate(normalize_id(user_id))

    async def invalidate_bulk(self, user_ids: Iterable[Identifier]) -> int:
        return await self._cache.invalidate_many(normalize_id(u) for u in user_ids)

    async def invalidate_role(self, role_id: Identifier) -> int:
        """Invalidate every user holding the role.

        If the holders cannot be listed, every snapshot is dropped instead.
        """
        role_id = normalize_id(role_id)
        try:
            user_ids = await self._repository.get_user_ids_with_role(role_id)
        except StoreUnavailableError as e:
            logger.warning(f"Cannot list holders of role {role_id} ({e.message}); clearing all snapshots")
            return await self._cache.clear()
        return await self._cache.invalidate_many(user_ids)

    async def invalidate_all(self) -> int:
        return await self._cache.clear()

    # Writes

    def _require_writer(self) -> GrantWriter:
        if self._writer is None:
            raise ConfigurationError("No grant writer configured for this authorization service")
        return self._writer

    async def assign_role(
        self,
        user_id: Identifier,
        role_id: Identifier,
        organization_id: Optional[Identifier] = None,
        department_id: Optional[Identifier] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        assigned_by: Optional[Identifier] = None,
    ) -> RoleAssignment:
        writer = self._require_writer()
        assignment = RoleAssignment(
            user_id=normalize_id(user_id),
            role_id=normalize_id(role_id),
            organization_id=normalize_id(organization_id),
            department_id=normalize_id(department_id),
            valid_from=valid_from,
            valid_until=valid_until,
        )
        await writer.assign_role(assignment, assigned_by=normalize_id(assigned_by))
        await self._cache.invalidate(assignment.user_id)
        logger.info(f"Assigned role {assignment.role_id} to user {assignment.user_id}")
        return assignment

    async def remove_role_assignment(
        self,
        user_id: Identifier,
        role_id: Identifier,
        organization_id: Optional[Identifier] = None,
    ) -> bool:
        writer = self._require_writer()
        user_id = normalize_id(user_id)
        removed = await writer.remove_role_assignment(user_id, normalize_id(role_id), normalize_id(organization_id))
        await self._cache.invalidate(user_id)
        return removed

    async def grant_permission(
        self,
        user_id: Identifier,
        permission_name: str,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        granted_by: Optional[Identifier] = None,
        notes: Optional[str] = None,
    ) -> GrantOverride:
        """Grant a permission directly to a user, replacing any prior override."""
        writer = self._require_writer()
        split_permission_name(permission_name)
        self._catalog.validate_assignable(permission_name)

        override = GrantOverride(
            user_id=normalize_id(user_id),
            permission_name=permission_name,
            valid_from=valid_from,
            valid_until=valid_until,
            granted_by=normalize_id(granted_by),
            notes=notes,
        )
        await writer.set_override(override)
        await self._cache.invalidate(override.user_id)
        logger.info(f"Granted permission {permission_name} to user {override.user_id}")
        return override

    async def revoke_permission(
        self,
        user_id: Identifier,
        permission_name: str,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        granted_by: Optional[Identifier] = None,
        notes: Optional[str] = None,
    ) -> RevokeOverride:
        """Lock a permission for a user regardless of roles or grants."""
        writer = self._require_writer()
        split_permission_name(permission_name)

        override = RevokeOverride(
            user_id=normalize_id(user_id),
            permission_name=permission_name,
            valid_from=valid_from,
            valid_until=valid_until,
            granted_by=normalize_id(granted_by),
            notes=notes,
        )
        await writer.set_override(override)
        await self._cache.invalidate(override.user_id)
        logger.info(f"Revoked permission {permission_name} from user {override.user_id}")
        return override

    async def clear_permission_override(self, user_id: Identifier, permission_name: str) -> bool:
        writer = self._require_writer()
        user_id = normalize_id(user_id)
        cleared = await writer.clear_override(user_id, permission_name)
        await self._cache.invalidate(user_id)
        return cleared

    async def link_role_permission(self, role_id: Identifier, permission_name: str) -> bool:
        writer = self._require_writer()
        split_permission_name(permission_name)
        self._catalog.validate_assignable(permission_name)

        role_id = normalize_id(role_id)
        linked = await writer.link_role_permission(role_id, permission_name)
        await self.invalidate_role(role_id)
        return linked

    async def unlink_role_permission(self, role_id: Identifier, permission_name: str) -> bool:
        writer = self._require_writer()
        role_id = normalize_id(role_id)
        unlinked = await writer.unlink_role_permission(role_id, permission_name)
        await self.invalidate_role(role_id)
        return unlinked

    async def add_role_parent(self, parent_role_id: Identifier, child_role_id: Identifier) -> bool:
        """Make a role inherit from another.

        Raises:
            RoleNotFoundError: if either role does not exist
            ConfigurationError: if the link would close an inheritance cycle
        """
        writer = self._require_writer()
        parent_role_id, child_role_id = normalize_id(parent_role_id), normalize_id(child_role_id)
        for role_id in (parent_role_id, child_role_id):
            if await self._repository.get_role(role_id) is None:
                raise RoleNotFoundError(f"Role not found: {role_id}", details={"role_id": role_id})
        if await self._role_graph.would_create_cycle(parent_role_id, child_role_id):
            raise ConfigurationError(
                f"Linking role {child_role_id} under {parent_role_id} would create an inheritance cycle",
                details={"parent_role_id": parent_role_id, "child_role_id": child_role_id},
            )

        added = await writer.add_role_parent(parent_role_id, child_role_id)
        # Every descendant of the child may change; holders are not tracked per subtree
        await self._cache.clear()
        return added

    # Operations

    async def warmup(
        self,
        user_ids: Iterable[Identifier],
        context: Optional[AuthorizationContext] = None,
    ) -> int:
        """Pre-compute snapshots concurrently. Returns the number warmed."""
        user_ids = list(dict.fromkeys(normalize_id(u) for u in user_ids))
        results = await asyncio.gather(
            *(self.get_effective_permissions(u, context) for u in user_ids),
            return_exceptions=True,
        )

        failures: List[str] = []
        for user_id, result in zip(user_ids, results):
            if isinstance(result, BaseException):
                failures.append(user_id)
                logger.warning(f"Permission warmup failed for user {user_id}: {type(result).__name__}: {result}")

        warmed = len(user_ids) - len(failures)
        logger.info(f"Warmed permission cache for {warmed}/{len(user_ids)} users")
        return warmed

    def get_stats(self) -> Dict[str, object]:
        """Diagnostic counters; not for security decisions."""
        return {
            "cache": self._cache.stats(),
            "decisions": dict(self._decisions),
            "catalog_size": len(self._catalog),
        }
