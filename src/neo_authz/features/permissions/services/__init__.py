"""Permission services."""

from .catalog import PermissionCatalog
from .role_graph import RoleGraphResolver
from .grant_accessors import GrantAccessors, assignment_matches_context
from .resolver import EffectivePermissionResolver, resource_access_allows
from .authorization_service import AuthorizationService

__all__ = [
    "PermissionCatalog",
    "RoleGraphResolver",
    "GrantAccessors",
    "assignment_matches_context",
    "EffectivePermissionResolver",
    "resource_access_allows",
    "AuthorizationService",
]
