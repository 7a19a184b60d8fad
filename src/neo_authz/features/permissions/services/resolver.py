"""Effective-permission resolver.

Merges the three permission sources with a fixed precedence:

1. ``granted`` = union of expanded active role assignments and active
   direct grants
2. ``revoked`` = active direct revokes
3. ``effective`` = ``granted - revoked``; a revoke beats every role or
   grant, no matter how many sources contribute the permission

Resource ACLs are not merged here; they are a fallback consulted per check
(see ``resource_access_allows``). Any accessor failure aborts the whole
computation, the caller decides how to fail closed.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ....config.constants import action_access_level
from ....core.value_objects import AuthorizationContext, scope_key_for
from ....utils import utc_now
from ..entities import (
    ALL_PERMISSIONS,
    EffectivePermissionSnapshot,
    ResolvedPermissions,
)
from .catalog import PermissionCatalog
from .grant_accessors import GrantAccessors
from .role_graph import RoleGraphResolver


logger = logging.getLogger(__name__)


def resource_access_allows(
    snapshot: EffectivePermissionSnapshot,
    permission_name: str,
    resource_type: str,
    resource_id: str,
) -> bool:
    """Resource ACL fallback for a permission missing from the effective set.

    The action suffix maps to a minimum access level (create/update -> write,
    delete/manage -> admin, read/view -> read). Actions without a mapping
    never fall back.
    """
    required = action_access_level(permission_name)
    if required is None:
        return False
    return snapshot.has_resource_access(resource_type, str(resource_id), required)


class EffectivePermissionResolver:
    """Computes a user's effective permissions from the grant store."""

    def __init__(
        self,
        accessors: GrantAccessors,
        role_graph: RoleGraphResolver,
        catalog: Optional[PermissionCatalog] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._accessors = accessors
        self._role_graph = role_graph
        self._catalog = catalog
        self._clock = clock

    async def resolve(
        self,
        user_id: str,
        context: Optional[AuthorizationContext] = None,
        now: Optional[datetime] = None,
    ) -> ResolvedPermissions:
        now = now or self._clock()

        # Independent reads; the first failure aborts the computation
        assignments, grants, revokes, resources = await asyncio.gather(
            self._accessors.active_role_assignments(user_id, now, context),
            self._accessors.active_direct_grants(user_id, now),
            self._accessors.active_direct_revokes(user_id, now),
            self._accessors.resource_access(user_id),
        )

        role_ids = tuple(dict.fromkeys(a.role_id for a in assignments))
        expansion = await self._role_graph.expand_roles(role_ids)
        all_permissions = expansion is ALL_PERMISSIONS

        granted = set(g.permission_name for g in grants)
        if not all_permissions:
            granted |= expansion
        revoked = frozenset(r.permission_name for r in revokes)

        effective = granted - revoked
        if self._catalog is not None:
            effective = {name for name in effective if not self._catalog.is_inactive(name)}

        logger.debug(
            f"Resolved {len(effective)} permissions for user {user_id} "
            f"(roles={len(role_ids)}, grants={len(grants)}, revokes={len(revoked)}, "
            f"resources={len(resources)}, system={all_permissions})"
        )

        return ResolvedPermissions(
            user_id=user_id,
            scope_key=scope_key_for(context),
            permission_names=frozenset(effective),
            all_permissions=all_permissions,
            role_ids=role_ids,
            granted=frozenset(granted),
            revoked=revoked,
            resource_access=tuple(resources),
        )
