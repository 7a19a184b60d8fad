"""Constants and enums for neo-authz.

These correspond to the enums of the permission tables in the platform
database (``access_level``, the ``user_permissions.action`` column).
"""

from enum import Enum
from typing import Dict, Final, Optional


class AccessLevel(str, Enum):
    """Per-resource access level - corresponds to the access_level enum."""

    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ACCESS_RANK[self]

    def satisfies(self, required: "AccessLevel") -> bool:
        """Check whether this level meets or exceeds ``required``."""
        return self.rank >= required.rank


_ACCESS_RANK: Dict[AccessLevel, int] = {
    AccessLevel.NONE: 0,
    AccessLevel.READ: 1,
    AccessLevel.WRITE: 2,
    AccessLevel.ADMIN: 3,
}


class OverrideAction(str, Enum):
    """Direct permission override action."""

    GRANT = "grant"
    REVOKE = "revoke"


# Action suffix -> minimum resource access level for the ACL fallback
ACTION_ACCESS_LEVELS: Final[Dict[str, AccessLevel]] = {
    "read": AccessLevel.READ,
    "view": AccessLevel.READ,
    "list": AccessLevel.READ,
    "create": AccessLevel.WRITE,
    "update": AccessLevel.WRITE,
    "write": AccessLevel.WRITE,
    "edit": AccessLevel.WRITE,
    "delete": AccessLevel.ADMIN,
    "manage": AccessLevel.ADMIN,
    "admin": AccessLevel.ADMIN,
}

PERMISSION_SEPARATOR: Final[str] = "."
GLOBAL_SCOPE: Final[str] = "*"
SYSTEM_ADMIN_PERMISSION: Final[str] = "system.admin"


class CacheKeys:
    """Key patterns for the Redis durable tier."""

    SNAPSHOT: Final[str] = "{prefix}:snapshot:{user_id}:{scope_key}"
    USER_INDEX: Final[str] = "{prefix}:snapshot_keys:{user_id}"
    ALL_USERS: Final[str] = "{prefix}:snapshot_users"


def action_access_level(permission_name: str) -> Optional[AccessLevel]:
    """Map a permission's action suffix to the minimum resource access level.

    Returns None when the action has no resource-level equivalent.
    """
    action = permission_name.rsplit(PERMISSION_SEPARATOR, 1)[-1].lower()
    return ACTION_ACCESS_LEVELS.get(action)
