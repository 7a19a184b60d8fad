"""Authorization context value object.

Carries the organization/department scope supplied by the identity provider
after its own verification. Trusted as-is.
"""

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from ...config.constants import GLOBAL_SCOPE


Identifier = Union[str, UUID]


def normalize_id(value: Optional[Identifier]) -> Optional[str]:
    """Normalize a UUID or string identifier to its canonical string form."""
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class AuthorizationContext:
    """Immutable organization/department scope for a permission check."""

    organization_id: Optional[str] = None
    department_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "organization_id", normalize_id(self.organization_id))
        object.__setattr__(self, "department_id", normalize_id(self.department_id))

    @property
    def scope_key(self) -> str:
        """Cache scope key; unscoped checks share the global key."""
        return scope_key_for(self)

    @property
    def is_global(self) -> bool:
        return self.organization_id is None and self.department_id is None


def scope_key_for(context: Optional[AuthorizationContext]) -> str:
    """Build the cache scope key for an optional context."""
    if context is None or context.is_global:
        return GLOBAL_SCOPE
    org = context.organization_id or GLOBAL_SCOPE
    dept = context.department_id or GLOBAL_SCOPE
    return f"org={org};dept={dept}"
