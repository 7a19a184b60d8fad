"""Neo-Authz - permission resolution and caching for the NeoMultiTenant platform.

Resolves a user's effective permissions from roles, role inheritance,
direct grant/revoke overrides and resource ACLs, caches the result in a
memory + durable two-tier cache, and answers permission checks that fail
closed on infrastructure errors.

Logging is configured by the host application, e.g. via ``setup_logging()``.
"""

from .__version__ import __version__

# Configuration
from .config import (
    AuthzSettings,
    get_settings,
    AccessLevel,
    OverrideAction,
    setup_logging,
    get_logger,
)

from .core.exceptions import (
    NeoAuthzError,
    ConfigurationError,
    ValidationError,
    InvalidPermissionNameError,
    HiddenPermissionError,
    AuthorizationError,
    PermissionNotFoundError,
    RoleNotFoundError,
    StoreUnavailableError,
    StoreWriteError,
    CacheError,
    StaleCacheRaceError,
    create_error_response,
)

from .core.value_objects import AuthorizationContext

# Permission feature
from .features.permissions.entities import (
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
    GrantRepository,
    GrantWriter,
)
from .features.permissions.services import (
    AuthorizationService,
    EffectivePermissionResolver,
    GrantAccessors,
    PermissionCatalog,
    RoleGraphResolver,
)
from .features.permissions.repositories import (
    AsyncPGGrantRepository,
    AsyncPGGrantWriter,
    TimedGrantRepository,
)

# Cache feature
from .features.cache import (
    SnapshotCache,
    SnapshotStore,
    MemorySnapshotTier,
    AsyncPGSnapshotStore,
    RedisSnapshotStore,
)

from .factory import create_authorization_service

__all__ = [
    "__version__",

    # Configuration
    "AuthzSettings",
    "get_settings",
    "AccessLevel",
    "OverrideAction",
    "setup_logging",
    "get_logger",

    # Exceptions
    "NeoAuthzError",
    "ConfigurationError",
    "ValidationError",
    "InvalidPermissionNameError",
    "HiddenPermissionError",
    "AuthorizationError",
    "PermissionNotFoundError",
    "RoleNotFoundError",
    "StoreUnavailableError",
    "StoreWriteError",
    "CacheError",
    "StaleCacheRaceError",
    "create_error_response",

    # Value objects
    "AuthorizationContext",

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
    "GrantRepository",
    "GrantWriter",

    # Services
    "AuthorizationService",
    "EffectivePermissionResolver",
    "GrantAccessors",
    "PermissionCatalog",
    "RoleGraphResolver",

    # Repositories
    "AsyncPGGrantRepository",
    "AsyncPGGrantWriter",
    "TimedGrantRepository",

    # Cache
    "SnapshotCache",
    "SnapshotStore",
    "MemorySnapshotTier",
    "AsyncPGSnapshotStore",
    "RedisSnapshotStore",

    # Factory
    "create_authorization_service",
]
