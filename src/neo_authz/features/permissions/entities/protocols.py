"""Protocols for the permission feature.

The authorization core consumes the persistent store only through these
narrow interfaces; the concrete asyncpg implementations live in
``repositories/``.
"""

from typing import List, Optional, Protocol, runtime_checkable

from ....config.constants import OverrideAction
from .grants import Override, ResourceAccess, RoleAssignment
from .permission import Permission
from .role import Role


@runtime_checkable
class GrantRepository(Protocol):
    """Read-only access to the grant graph.

    Implementations return raw rows for a user; temporal validity and scope
    filtering are applied by the grant accessors, never by the cache.
    """

    async def get_role_assignments(self, user_id: str) -> List[RoleAssignment]:
        """All role assignments of a user, active or not."""
        ...

    async def get_overrides(self, user_id: str, action: OverrideAction) -> List[Override]:
        """All direct overrides of a user with the given action."""
        ...

    async def get_resource_access(self, user_id: str) -> List[ResourceAccess]:
        """All resource ACL entries of a user."""
        ...

    async def get_role(self, role_id: str) -> Optional[Role]:
        """Role definition including attached permissions and parents."""
        ...

    async def list_permissions(self) -> List[Permission]:
        """Every permission definition, for loading the catalog."""
        ...

    async def get_user_ids_with_role(self, role_id: str) -> List[str]:
        """Users holding an assignment (active or not) to a role."""
        ...


@runtime_checkable
class GrantWriter(Protocol):
    """Administrative writes to the grant graph.

    Every method returns only after its transaction has committed, so the
    caller may invalidate caches immediately afterwards.
    """

    async def assign_role(self, assignment: RoleAssignment, assigned_by: Optional[str] = None) -> None:
        ...

    async def remove_role_assignment(
        self, user_id: str, role_id: str, organization_id: Optional[str] = None
    ) -> bool:
        ...

    async def set_override(self, override: Override) -> None:
        """Insert or replace the user's override for the permission."""
        ...

    async def clear_override(self, user_id: str, permission_name: str) -> bool:
        ...

    async def link_role_permission(self, role_id: str, permission_name: str) -> bool:
        ...

    async def unlink_role_permission(self, role_id: str, permission_name: str) -> bool:
        ...

    async def add_role_parent(self, parent_role_id: str, child_role_id: str) -> bool:
        ...
