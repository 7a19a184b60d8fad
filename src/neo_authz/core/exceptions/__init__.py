"""Exception hierarchy for neo-authz."""

from .base import NeoAuthzError, create_error_response
from .domain import (
    ConfigurationError,
    ValidationError,
    InvalidPermissionNameError,
    HiddenPermissionError,
    AuthorizationError,
    PermissionNotFoundError,
    RoleNotFoundError,
)
from .infrastructure import (
    StoreUnavailableError,
    CacheError,
    CacheSerializationError,
    StaleCacheRaceError,
    StoreWriteError,
)

__all__ = [
    "NeoAuthzError",
    "create_error_response",
    "ConfigurationError",
    "ValidationError",
    "InvalidPermissionNameError",
    "HiddenPermissionError",
    "AuthorizationError",
    "PermissionNotFoundError",
    "RoleNotFoundError",
    "StoreUnavailableError",
    "CacheError",
    "CacheSerializationError",
    "StaleCacheRaceError",
    "StoreWriteError",
]
