"""Timeout guard for grant store reads.

Wraps any GrantRepository so that every call carries a timeout and every
infrastructure failure surfaces as StoreUnavailableError. Nothing read
through this wrapper can block a decision indefinitely.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, TypeVar

from ....config.constants import OverrideAction
from ....core.exceptions import NeoAuthzError, StoreUnavailableError
from ..entities import GrantRepository, Override, Permission, ResourceAccess, Role, RoleAssignment


logger = logging.getLogger(__name__)
T = TypeVar("T")


class TimedGrantRepository:
    """GrantRepository decorator enforcing per-call timeouts."""

    def __init__(self, repository: GrantRepository, timeout_seconds: float):
        self._repository = repository
        self._timeout = timeout_seconds

    @property
    def inner(self) -> GrantRepository:
        return self._repository

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(f"Grant store call {operation} timed out after {self._timeout}s")
            raise StoreUnavailableError(
                f"Grant store call {operation} timed out",
                details={"operation": operation, "timeout_seconds": self._timeout},
            )
        except NeoAuthzError:
            raise
        except Exception as e:
            logger.error(f"Grant store call {operation} failed: {e}")
            raise StoreUnavailableError(
                f"Grant store call {operation} failed: {e}",
                details={"operation": operation, "error_type": type(e).__name__},
            ) from e

    async def get_role_assignments(self, user_id: str) -> List[RoleAssignment]:
        return await self._call("get_role_assignments", self._repository.get_role_assignments(user_id))

    async def get_overrides(self, user_id: str, action: OverrideAction) -> List[Override]:
        return await self._call("get_overrides", self._repository.get_overrides(user_id, action))

    async def get_resource_access(self, user_id: str) -> List[ResourceAccess]:
        return await self._call("get_resource_access", self._repository.get_resource_access(user_id))

    async def get_role(self, role_id: str) -> Optional[Role]:
        return await self._call("get_role", self._repository.get_role(role_id))

    async def list_permissions(self) -> List[Permission]:
        return await self._call("list_permissions", self._repository.list_permissions())

    async def get_user_ids_with_role(self, role_id: str) -> List[str]:
        return await self._call("get_user_ids_with_role", self._repository.get_user_ids_with_role(role_id))
