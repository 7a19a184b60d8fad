"""Role domain entity.

A role's kind is a closed variant: a ``RegularRole`` carries its directly
attached permission names, a ``SystemRole`` bypasses granular checks. The
authorization facade short-circuits on ``SystemRole`` (via the
``ALL_PERMISSIONS`` marker) without enumerating a concrete set.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple, Union


@dataclass(frozen=True)
class RegularRole:
    """Role granting exactly its attached permissions (plus inherited ones)."""

    permissions: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "permissions", frozenset(self.permissions))


@dataclass(frozen=True)
class SystemRole:
    """Role bypassing every permission check."""


RoleKind = Union[RegularRole, SystemRole]


class AllPermissions:
    """Sentinel returned when a role expansion grants everything."""

    _instance: Optional["AllPermissions"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __contains__(self, permission_name: object) -> bool:
        return True

    def __repr__(self) -> str:
        return "ALL_PERMISSIONS"


ALL_PERMISSIONS = AllPermissions()

RoleExpansion = Union[FrozenSet[str], AllPermissions]


@dataclass(frozen=True)
class Role:
    """Domain entity representing a role and its inheritance links."""

    id: str
    name: str
    kind: RoleKind = field(default_factory=RegularRole)
    organization_id: Optional[str] = None
    parent_role_ids: Tuple[str, ...] = field(default_factory=tuple)
    priority: int = 0
    is_active: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "parent_role_ids", tuple(str(p) for p in self.parent_role_ids or ()))
        if self.organization_id is not None:
            object.__setattr__(self, "organization_id", str(self.organization_id))

    @property
    def is_system_role(self) -> bool:
        return isinstance(self.kind, SystemRole)

    @property
    def is_global(self) -> bool:
        """Roles without an organization are global/system-wide."""
        return self.organization_id is None

    def direct_permissions(self) -> FrozenSet[str]:
        """Permissions attached to this role itself (empty for system roles)."""
        if isinstance(self.kind, RegularRole):
            return self.kind.permissions
        return frozenset()

    def __str__(self) -> str:
        return f"Role({self.name})"
