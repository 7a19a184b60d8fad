"""Permission feature for neo-authz.

Feature-First architecture for permission resolution:
- entities/: permissions, roles, grants, snapshots and store protocols
- repositories/: asyncpg grant store and the timeout guard
- services/: catalog, role graph, accessors, resolver and the facade

Services and repositories are imported from their subpackages because the
cache feature depends on the entities exported here.
"""

# Core permission entities and protocols
from .entities import (
    Permission,
    Role,
    RegularRole,
    SystemRole,
    ALL_PERMISSIONS,
    RoleAssignment,
    GrantOverride,
    RevokeOverride,
    ResourceAccess,
    EffectivePermissionSnapshot,
    ResolvedPermissions,
    GrantRepository,
    GrantWriter,
)

__all__ = [
    # Entities
    "Permission",
    "Role",
    "RegularRole",
    "SystemRole",
    "ALL_PERMISSIONS",
    "RoleAssignment",
    "GrantOverride",
    "RevokeOverride",
    "ResourceAccess",
    "EffectivePermissionSnapshot",
    "ResolvedPermissions",

    # Protocols
    "GrantRepository",
    "GrantWriter",
]
