"""Value objects for neo-authz."""

from .context import AuthorizationContext, Identifier, normalize_id, scope_key_for

__all__ = [
    "AuthorizationContext",
    "Identifier",
    "normalize_id",
    "scope_key_for",
]
