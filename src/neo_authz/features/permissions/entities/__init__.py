"""Permission feature entities and protocols."""

from .permission import Permission, split_permission_name
from .role import (
    Role,
    RoleKind,
    RegularRole,
    SystemRole,
    AllPermissions,
    ALL_PERMISSIONS,
    RoleExpansion,
)
from .grants import (
    RoleAssignment,
    GrantOverride,
    RevokeOverride,
    Override,
    ResourceAccess,
    build_override,
    within_window,
)
from .snapshot import (
    EffectivePermissionSnapshot,
    ResolvedPermissions,
    compute_content_hash,
)
from .protocols import GrantRepository, GrantWriter

__all__ = [
    "Permission",
    "split_permission_name",
    "Role",
    "RoleKind",
    "RegularRole",
    "SystemRole",
    "AllPermissions",
    "ALL_PERMISSIONS",
    "RoleExpansion",
    "RoleAssignment",
    "GrantOverride",
    "RevokeOverride",
    "Override",
    "ResourceAccess",
    "build_override",
    "within_window",
    "EffectivePermissionSnapshot",
    "ResolvedPermissions",
    "compute_content_hash",
    "GrantRepository",
    "GrantWriter",
]
