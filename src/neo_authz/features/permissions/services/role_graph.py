"""Role graph resolver.

Expands a role into its full permission set by following inheritance links
(child role -> parent roles). Pure RBAC union has no conflicts; priority is
only used to order permissions for display.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from ....core.exceptions import ConfigurationError
from ..entities import ALL_PERMISSIONS, GrantRepository, Role, RoleExpansion
from .catalog import PermissionCatalog


logger = logging.getLogger(__name__)


class RoleGraphResolver:
    """Expands roles through the inheritance graph, rejecting cycles."""

    def __init__(self, repository: GrantRepository, catalog: Optional[PermissionCatalog] = None):
        self._repository = repository
        self._catalog = catalog

    async def expand_role(self, role_id: str) -> RoleExpansion:
        """Full permission set of a role, or ALL_PERMISSIONS for system roles.

        Raises:
            ConfigurationError: if the inheritance graph contains a cycle
        """
        return await self._expand(str(role_id), memo={}, path=[])

    async def expand_roles(self, role_ids: Iterable[str]) -> RoleExpansion:
        """Union of several role expansions sharing one lookup memo."""
        memo: Dict[str, RoleExpansion] = {}
        permissions: Set[str] = set()

        for role_id in role_ids:
            expansion = await self._expand(str(role_id), memo=memo, path=[])
            if expansion is ALL_PERMISSIONS:
                return ALL_PERMISSIONS
            permissions |= expansion

        return frozenset(permissions)

    async def ordered_permissions(self, role_id: str) -> List[str]:
        """Expanded permissions ordered by priority for display."""
        expansion = await self.expand_role(role_id)
        if expansion is ALL_PERMISSIONS:
            return []
        if self._catalog is None:
            return sorted(expansion)
        return self._catalog.order_names(expansion)

    async def would_create_cycle(self, parent_role_id: str, child_role_id: str) -> bool:
        """Check whether linking child -> parent would close an inheritance cycle."""
        parent_role_id, child_role_id = str(parent_role_id), str(child_role_id)
        if parent_role_id == child_role_id:
            return True

        visited: Set[str] = set()
        stack = [parent_role_id]
        while stack:
            current = stack.pop()
            if current == child_role_id:
                return True
            if current in visited:
                continue
            visited.add(current)

            role = await self._repository.get_role(current)
            if role is not None:
                stack.extend(role.parent_role_ids)

        return False

    async def _expand(self, role_id: str, memo: Dict[str, RoleExpansion], path: List[str]) -> RoleExpansion:
        if role_id in path:
            cycle = path[path.index(role_id):] + [role_id]
            raise ConfigurationError(
                f"Role inheritance cycle: {' -> '.join(cycle)}",
                details={"role_id": role_id, "cycle": cycle},
            )
        if role_id in memo:
            return memo[role_id]

        role = await self._repository.get_role(role_id)
        expansion = await self._expand_loaded(role_id, role, memo, path)
        memo[role_id] = expansion
        return expansion

    async def _expand_loaded(
        self,
        role_id: str,
        role: Optional[Role],
        memo: Dict[str, RoleExpansion],
        path: List[str],
    ) -> RoleExpansion:
        if role is None:
            logger.warning(f"Role {role_id} not found while expanding permissions")
            return frozenset()
        if not role.is_active:
            logger.info(f"Skipping inactive role {role.name} ({role_id})")
            return frozenset()
        if role.is_system_role:
            return ALL_PERMISSIONS

        permissions: Set[str] = set(role.direct_permissions())
        path.append(role_id)
        try:
            for parent_id in role.parent_role_ids:
                inherited = await self._expand(parent_id, memo, path)
                if inherited is ALL_PERMISSIONS:
                    return ALL_PERMISSIONS
                permissions |= inherited
        finally:
            path.pop()

        return frozenset(permissions)
