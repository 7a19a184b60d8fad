"""Grant store accessors.

Pure, uncached reads of a user's grants. Each accessor applies temporal
validity (flag and ``[valid_from, valid_until)`` window at the evaluation
instant) and, for role assignments, organization/department scoping.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ....config.constants import OverrideAction
from ....core.value_objects import AuthorizationContext
from ..entities import (
    GrantOverride,
    GrantRepository,
    ResourceAccess,
    RevokeOverride,
    RoleAssignment,
)


logger = logging.getLogger(__name__)


def assignment_matches_context(assignment: RoleAssignment, context: Optional[AuthorizationContext]) -> bool:
    """Check an assignment against the requested scope.

    Assignments without an organization are global and match every scope.
    A department-scoped assignment only matches the same department when
    the request names one.
    """
    if context is None or assignment.is_global:
        return True
    if context.organization_id is not None and assignment.organization_id != context.organization_id:
        return False
    if (
        context.department_id is not None
        and assignment.department_id is not None
        and assignment.department_id != context.department_id
    ):
        return False
    return True


class GrantAccessors:
    """Filtered reads over a GrantRepository."""

    def __init__(self, repository: GrantRepository):
        self._repository = repository

    async def active_role_assignments(
        self,
        user_id: str,
        now: datetime,
        context: Optional[AuthorizationContext] = None,
    ) -> List[RoleAssignment]:
        rows = await self._repository.get_role_assignments(user_id)
        active = []
        for assignment in rows:
            if not assignment.is_effective_at(now):
                continue
            if not assignment_matches_context(assignment, context):
                # Context mismatch is a non-grant, not an error
                logger.debug(
                    f"Context mismatch for user {user_id}: role {assignment.role_id} "
                    f"scoped to org={assignment.organization_id} dept={assignment.department_id}"
                )
                continue
            active.append(assignment)
        return active

    async def active_direct_grants(self, user_id: str, now: datetime) -> List[GrantOverride]:
        rows = await self._repository.get_overrides(user_id, OverrideAction.GRANT)
        return [o for o in rows if isinstance(o, GrantOverride) and o.is_effective_at(now)]

    async def active_direct_revokes(self, user_id: str, now: datetime) -> List[RevokeOverride]:
        rows = await self._repository.get_overrides(user_id, OverrideAction.REVOKE)
        return [o for o in rows if isinstance(o, RevokeOverride) and o.is_effective_at(now)]

    async def resource_access(self, user_id: str) -> List[ResourceAccess]:
        return list(await self._repository.get_resource_access(user_id))
