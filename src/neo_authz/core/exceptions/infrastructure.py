"""Infrastructure exceptions for neo-authz.

Store and cache errors raised while resolving a snapshot are
decision-affecting: the authorization facade collapses them to a denial.
Write errors propagate to the caller of the write wrapper.
"""

from .base import NeoAuthzError


# Store Errors
class StoreUnavailableError(NeoAuthzError):
    """Raised when the grant store times out or cannot be reached."""
    pass


# Cache Errors
class CacheError(NeoAuthzError):
    """Base class for cache-related errors."""
    pass


class CacheSerializationError(CacheError):
    """Raised when a snapshot cannot be serialized or deserialized."""
    pass


class StaleCacheRaceError(CacheError):
    """Raised when a snapshot keeps being invalidated while it is computed."""
    pass


class StoreWriteError(NeoAuthzError):
    """Raised when an administrative write to the grant store fails."""
    pass
