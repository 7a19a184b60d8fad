"""Permission catalog.

In-memory registry of permission definitions and their dependency graph.
Registration rejects dependency cycles, so the graph held by the catalog is
always acyclic and every lookup is side-effect free.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ....core.exceptions import (
    ConfigurationError,
    HiddenPermissionError,
    PermissionNotFoundError,
)
from ..entities import GrantRepository, Permission


logger = logging.getLogger(__name__)


class PermissionCatalog:
    """Registry of permission definitions keyed by their unique name."""

    def __init__(self, hidden_permissions: Iterable[str] = ()):
        self._permissions: Dict[str, Permission] = {}
        self._hidden = frozenset(hidden_permissions)

    def __len__(self) -> int:
        return len(self._permissions)

    def __contains__(self, name: object) -> bool:
        return name in self._permissions

    # Registration

    def register(self, permission: Permission) -> Permission:
        """Register a permission definition.

        Re-registering an identical definition is a no-op. A different
        definition under an existing name, or one that closes a dependency
        cycle, raises ConfigurationError and leaves the catalog unchanged.
        """
        existing = self._permissions.get(permission.name)
        if existing is not None:
            if existing == permission:
                return existing
            raise ConfigurationError(
                f"Conflicting definition for permission {permission.name}",
                details={"permission": permission.name},
            )

        cycle = self._find_cycle(permission)
        if cycle:
            raise ConfigurationError(
                f"Permission dependency cycle: {' -> '.join(cycle)}",
                details={"permission": permission.name, "cycle": cycle},
            )

        self._permissions[permission.name] = permission
        logger.debug(f"Registered permission {permission.name}")
        return permission

    def register_many(self, permissions: Iterable[Permission]) -> int:
        """Register several permissions atomically; returns the count added."""
        backup = dict(self._permissions)
        before = len(self._permissions)
        try:
            for permission in permissions:
                self.register(permission)
        except ConfigurationError:
            self._permissions = backup
            raise
        return len(self._permissions) - before

    async def load(self, repository: GrantRepository) -> int:
        """Bulk-register the store's permission definitions at startup."""
        permissions = await repository.list_permissions()
        count = self.register_many(permissions)
        logger.info(f"Loaded {count} permissions into catalog")
        return count

    def _find_cycle(self, candidate: Permission) -> Optional[List[str]]:
        # The registered graph is acyclic, so a new cycle must pass through the candidate
        stack = [(dep, [candidate.name, dep]) for dep in candidate.depends_on]
        visited: Set[str] = set()

        while stack:
            current, path = stack.pop()
            if current == candidate.name:
                return path
            if current in visited:
                continue
            visited.add(current)

            node = self._permissions.get(current)
            if node is None:
                continue
            for dep in node.depends_on:
                stack.append((dep, path + [dep]))

        return None

    # Lookups

    def get(self, name: str) -> Optional[Permission]:
        return self._permissions.get(name)

    def require(self, name: str) -> Permission:
        permission = self._permissions.get(name)
        if permission is None:
            raise PermissionNotFoundError(f"Permission not found: {name}", details={"permission": name})
        return permission

    def list_all(self) -> List[Permission]:
        return self._sorted(self._permissions.values())

    def list_by_category(self, category: str) -> List[Permission]:
        return self._sorted(p for p in self._permissions.values() if p.category == category)

    def categories(self) -> List[str]:
        return sorted({p.category for p in self._permissions.values()})

    def resolve_dependencies(self, name: str) -> List[Permission]:
        """Transitive closure over ``depends_on``, dependencies first.

        The requested permission itself is not included.
        """
        root = self.require(name)
        ordered: List[Permission] = []
        seen: Set[str] = {root.name}

        def visit(permission: Permission) -> None:
            for dep_name in permission.depends_on:
                if dep_name in seen:
                    continue
                seen.add(dep_name)
                dependency = self._permissions.get(dep_name)
                if dependency is None:
                    raise ConfigurationError(
                        f"Permission {permission.name} depends on unregistered permission {dep_name}",
                        details={"permission": permission.name, "dependency": dep_name},
                    )
                visit(dependency)
                ordered.append(dependency)

        visit(root)
        return ordered

    def is_known(self, name: str) -> bool:
        return name in self._permissions

    def is_active(self, name: str) -> bool:
        permission = self._permissions.get(name)
        return permission is not None and permission.is_active

    def is_inactive(self, name: str) -> bool:
        """True only for permissions known to the catalog and deactivated."""
        permission = self._permissions.get(name)
        return permission is not None and not permission.is_active

    def order_names(self, names: Iterable[str]) -> List[str]:
        """Order names for display: priority descending, then name."""
        def sort_key(name: str):
            permission = self._permissions.get(name)
            return (-(permission.priority if permission else 0), name)
        return sorted(set(names), key=sort_key)

    # Hidden permissions

    def is_hidden(self, name: str) -> bool:
        return name in self._hidden

    def validate_assignable(self, name: str) -> None:
        """Hidden permissions can only be managed directly in the store."""
        if self.is_hidden(name):
            raise HiddenPermissionError(
                f"Permission '{name}' cannot be assigned via API",
                details={"permission": name},
            )

    def filter_visible(self, permissions: Sequence[Permission]) -> List[Permission]:
        return [p for p in permissions if not self.is_hidden(p.name)]

    @staticmethod
    def _sorted(permissions: Iterable[Permission]) -> List[Permission]:
        return sorted(permissions, key=lambda p: (-p.priority, p.name))
