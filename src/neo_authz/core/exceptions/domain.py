"""Domain exceptions for neo-authz."""

from .base import NeoAuthzError


# Configuration Errors
class ConfigurationError(NeoAuthzError):
    """Raised for invalid permission or role definitions (e.g. cycles).

    This is the only error allowed to abort startup.
    """
    pass


# Validation Errors
class ValidationError(NeoAuthzError):
    """Raised when input validation fails."""
    pass


class InvalidPermissionNameError(ValidationError):
    """Raised when a permission name is not in 'resource.action' form."""
    pass


class HiddenPermissionError(ValidationError):
    """Raised when a hidden permission is assigned through the write API."""
    pass


# Authorization Errors
class AuthorizationError(NeoAuthzError):
    """Base class for authorization-related errors."""
    pass


class PermissionNotFoundError(AuthorizationError):
    """Raised when a permission is not registered in the catalog."""
    pass


class RoleNotFoundError(AuthorizationError):
    """Raised when a role does not exist."""
    pass
