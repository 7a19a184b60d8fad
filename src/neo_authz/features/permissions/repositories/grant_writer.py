"""AsyncPG-based grant writer.

Each write runs in its own transaction and returns only after it commits.
"""

import logging
from typing import Optional

import asyncpg

from ....core.exceptions import NeoAuthzError, PermissionNotFoundError, StoreWriteError
from ..entities import Override, RoleAssignment


logger = logging.getLogger(__name__)


def _affected_rows(status: str) -> int:
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class AsyncPGGrantWriter:
    """AsyncPG implementation of GrantWriter protocol."""

    def __init__(self, pool: asyncpg.Pool, schema: Optional[str] = None):
        if schema is not None and not schema.replace("_", "").isalnum():
            raise ValueError(f"Invalid schema name: {schema}")
        self._pool = pool
        self._prefix = f"{schema}." if schema else ""

    def _table(self, name: str) -> str:
        return f"{self._prefix}{name}"

    async def _permission_id(self, conn: asyncpg.Connection, permission_name: str):
        permission_id = await conn.fetchval(
            f"SELECT id FROM {self._table('permissions')} WHERE name = $1",
            permission_name,
        )
        if permission_id is None:
            raise PermissionNotFoundError(
                f"Permission '{permission_name}' not found",
                details={"permission": permission_name},
            )
        return permission_id

    def _wrap(self, operation: str, error: Exception) -> NeoAuthzError:
        if isinstance(error, NeoAuthzError):
            return error
        logger.error(f"Failed to {operation}: {error}")
        return StoreWriteError(
            f"Failed to {operation}: {error}",
            details={"operation": operation, "error_kind": type(error).__name__},
        )

    async def assign_role(self, assignment: RoleAssignment, assigned_by: Optional[str] = None) -> None:
        query = f"""
            INSERT INTO {self._table('user_roles')}
                (user_id, role_id, organization_id, department_id,
                 valid_from, valid_until, is_active, assigned_by)
            VALUES ($1::uuid, $2::uuid, $3::uuid, $4::uuid,
                    COALESCE($5, NOW()), $6, $7, $8::uuid)
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        query,
                        assignment.user_id,
                        assignment.role_id,
                        assignment.organization_id,
                        assignment.department_id,
                        assignment.valid_from,
                        assignment.valid_until,
                        assignment.is_active,
                        assigned_by,
                    )
        except Exception as e:
            raise self._wrap(f"assign role {assignment.role_id} to user {assignment.user_id}", e) from e

    async def remove_role_assignment(
        self, user_id: str, role_id: str, organization_id: Optional[str] = None
    ) -> bool:
        query = f"""
            UPDATE {self._table('user_roles')}
            SET is_active = false
            WHERE user_id = $1::uuid
              AND role_id = $2::uuid
              AND ($3::uuid IS NULL OR organization_id = $3::uuid)
              AND is_active = true
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(query, user_id, role_id, organization_id)
            return _affected_rows(status) > 0
        except Exception as e:
            raise self._wrap(f"remove role {role_id} from user {user_id}", e) from e

    async def set_override(self, override: Override) -> None:
        delete_query = f"""
            DELETE FROM {self._table('user_permissions')}
            WHERE user_id = $1::uuid AND permission_id = $2
        """
        insert_query = f"""
            INSERT INTO {self._table('user_permissions')}
                (user_id, permission_id, action, valid_from, valid_until,
                 is_active, granted_by, notes)
            VALUES ($1::uuid, $2, $3, COALESCE($4, NOW()), $5, true, $6::uuid, $7)
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    permission_id = await self._permission_id(conn, override.permission_name)
                    await conn.execute(delete_query, override.user_id, permission_id)
                    await conn.execute(
                        insert_query,
                        override.user_id,
                        permission_id,
                        override.action.value,
                        override.valid_from,
                        override.valid_until,
                        override.granted_by,
                        override.notes,
                    )
        except Exception as e:
            raise self._wrap(
                f"{override.action.value} permission {override.permission_name} for user {override.user_id}", e
            ) from e

    async def clear_override(self, user_id: str, permission_name: str) -> bool:
        query = f"""
            DELETE FROM {self._table('user_permissions')} up
            USING {self._table('permissions')} p
            WHERE p.id = up.permission_id
              AND up.user_id = $1::uuid
              AND p.name = $2
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(query, user_id, permission_name)
            return _affected_rows(status) > 0
        except Exception as e:
            raise self._wrap(f"clear override {permission_name} for user {user_id}", e) from e

    async def link_role_permission(self, role_id: str, permission_name: str) -> bool:
        query = f"""
            INSERT INTO {self._table('role_permissions')} (role_id, permission_id)
            SELECT $1::uuid, $2
            WHERE NOT EXISTS (
                SELECT 1 FROM {self._table('role_permissions')}
                WHERE role_id = $1::uuid AND permission_id = $2
            )
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    permission_id = await self._permission_id(conn, permission_name)
                    status = await conn.execute(query, role_id, permission_id)
            return _affected_rows(status) > 0
        except Exception as e:
            raise self._wrap(f"link permission {permission_name} to role {role_id}", e) from e

    async def unlink_role_permission(self, role_id: str, permission_name: str) -> bool:
        query = f"""
            DELETE FROM {self._table('role_permissions')} rp
            USING {self._table('permissions')} p
            WHERE p.id = rp.permission_id
              AND rp.role_id = $1::uuid
              AND p.name = $2
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(query, role_id, permission_name)
            return _affected_rows(status) > 0
        except Exception as e:
            raise self._wrap(f"unlink permission {permission_name} from role {role_id}", e) from e

    async def add_role_parent(self, parent_role_id: str, child_role_id: str) -> bool:
        query = f"""
            INSERT INTO {self._table('role_hierarchy')} (parent_role_id, child_role_id)
            SELECT $1::uuid, $2::uuid
            WHERE NOT EXISTS (
                SELECT 1 FROM {self._table('role_hierarchy')}
                WHERE parent_role_id = $1::uuid AND child_role_id = $2::uuid
            )
        """
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(query, parent_role_id, child_role_id)
            return _affected_rows(status) > 0
        except Exception as e:
            raise self._wrap(f"link role {child_role_id} under {parent_role_id}", e) from e
