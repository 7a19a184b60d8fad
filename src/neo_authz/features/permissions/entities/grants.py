"""Grant entities: role assignments, direct overrides and resource ACLs.

Assignments and overrides are time-bounded. They are effective only when
their flag holds and the evaluation instant lies in ``[valid_from,
valid_until)``; the upper bound is exclusive.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ....config.constants import AccessLevel, OverrideAction
from ....utils import ensure_aware


def within_window(now: datetime, valid_from: Optional[datetime], valid_until: Optional[datetime]) -> bool:
    """Check ``valid_from <= now < valid_until`` with open-ended bounds."""
    if valid_from is not None and now < valid_from:
        return False
    if valid_until is not None and now >= valid_until:
        return False
    return True


@dataclass(frozen=True)
class RoleAssignment:
    """User to role link, optionally scoped to an organization/department."""

    user_id: str
    role_id: str
    organization_id: Optional[str] = None
    department_id: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    def __post_init__(self):
        for attr in ("user_id", "role_id", "organization_id", "department_id"):
            value = getattr(self, attr)
            if value is not None:
                object.__setattr__(self, attr, str(value))
        object.__setattr__(self, "valid_from", ensure_aware(self.valid_from))
        object.__setattr__(self, "valid_until", ensure_aware(self.valid_until))

    @property
    def is_global(self) -> bool:
        return self.organization_id is None

    def is_effective_at(self, now: datetime) -> bool:
        return self.is_active and within_window(now, self.valid_from, self.valid_until)


@dataclass(frozen=True)
class _OverrideBase:
    user_id: str
    permission_name: str
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    granted_by: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "user_id", str(self.user_id))
        if self.granted_by is not None:
            object.__setattr__(self, "granted_by", str(self.granted_by))
        object.__setattr__(self, "valid_from", ensure_aware(self.valid_from))
        object.__setattr__(self, "valid_until", ensure_aware(self.valid_until))

    def is_effective_at(self, now: datetime) -> bool:
        return within_window(now, self.valid_from, self.valid_until)


@dataclass(frozen=True)
class GrantOverride(_OverrideBase):
    """Direct grant of a single permission to a user."""

    @property
    def action(self) -> OverrideAction:
        return OverrideAction.GRANT


@dataclass(frozen=True)
class RevokeOverride(_OverrideBase):
    """Direct revoke; always wins over role- or grant-derived access."""

    @property
    def action(self) -> OverrideAction:
        return OverrideAction.REVOKE


Override = Union[GrantOverride, RevokeOverride]


def build_override(action: Union[OverrideAction, str], **fields) -> Override:
    """Build the override variant matching a stored action value."""
    action = OverrideAction(action)
    if action is OverrideAction.REVOKE:
        return RevokeOverride(**fields)
    return GrantOverride(**fields)


@dataclass(frozen=True)
class ResourceAccess:
    """Per-object access grant, independent of the role graph."""

    user_id: str
    resource_type: str
    resource_id: str
    access_level: AccessLevel = AccessLevel.READ

    def __post_init__(self):
        object.__setattr__(self, "user_id", str(self.user_id))
        object.__setattr__(self, "resource_id", str(self.resource_id))
        object.__setattr__(self, "access_level", AccessLevel(self.access_level))

    def grants(self, resource_type: str, resource_id: str, required: AccessLevel) -> bool:
        """Check whether this entry covers the object at the required level."""
        return (
            self.resource_type == resource_type
            and self.resource_id == str(resource_id)
            and self.access_level.satisfies(required)
        )
