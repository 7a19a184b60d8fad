"""AsyncPG-based grant repository implementation.

Concrete implementation of the GrantRepository protocol. Expects the grant
graph tables::

    permissions(id, name, resource, action, group_id, depends_on UUID[],
                priority, scope, is_active, description)
    permission_groups(id, name)
    roles(id, name, organization_id, is_system_role, is_active,
          sort_order, description)
    role_permissions(role_id, permission_id)
    role_hierarchy(parent_role_id, child_role_id)
    user_roles(user_id, role_id, organization_id, department_id,
               valid_from, valid_until, is_active, assigned_by)
    user_permissions(user_id, permission_id, action, valid_from,
                     valid_until, is_active, granted_by, notes)
    resource_access(user_id, resource_type, resource_id, access_level)
"""

import logging
from typing import List, Optional

import asyncpg

from ....config.constants import OverrideAction
from ..entities import (
    Override,
    Permission,
    RegularRole,
    ResourceAccess,
    Role,
    RoleAssignment,
    SystemRole,
    build_override,
)


logger = logging.getLogger(__name__)


class AsyncPGGrantRepository:
    """AsyncPG implementation of GrantRepository protocol."""

    def __init__(self, pool: asyncpg.Pool, schema: Optional[str] = None):
        """Initialize with a connection pool; tables are optionally schema-qualified."""
        if schema is not None and not schema.replace("_", "").isalnum():
            raise ValueError(f"Invalid schema name: {schema}")
        self._pool = pool
        self._prefix = f"{schema}." if schema else ""

    def _table(self, name: str) -> str:
        return f"{self._prefix}{name}"

    def _build_assignment_from_row(self, row: asyncpg.Record) -> RoleAssignment:
        """Build RoleAssignment entity from database row."""
        return RoleAssignment(
            user_id=row['user_id'],
            role_id=row['role_id'],
            organization_id=row['organization_id'],
            department_id=row['department_id'],
            valid_from=row['valid_from'],
            valid_until=row['valid_until'],
            is_active=row['is_active'],
        )

    def _build_override_from_row(self, row: asyncpg.Record, action: OverrideAction) -> Override:
        """Build the override variant from database row."""
        return build_override(
            action,
            user_id=row['user_id'],
            permission_name=row['permission_name'],
            valid_from=row['valid_from'],
            valid_until=row['valid_until'],
            granted_by=row['granted_by'],
            notes=row['notes'],
        )

    def _build_permission_from_row(self, row: asyncpg.Record) -> Permission:
        """Build Permission entity from database row."""
        return Permission(
            name=row['name'],
            resource=row['resource'],
            action=row['action'],
            category=row['category'] or "general",
            priority=row['priority'] or 0,
            depends_on=tuple(row['depends_on'] or ()),
            is_system=row['is_system'],
            is_active=row['is_active'],
            description=row['description'],
        )

    async def get_role_assignments(self, user_id: str) -> List[RoleAssignment]:
        query = f"""
            SELECT user_id::text, role_id::text, organization_id::text,
                   department_id::text, valid_from, valid_until, is_active
            FROM {self._table('user_roles')}
            WHERE user_id = $1::uuid
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, user_id)
            return [self._build_assignment_from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to get role assignments for user {user_id}: {e}")
            raise

    async def get_overrides(self, user_id: str, action: OverrideAction) -> List[Override]:
        # is_active on user_permissions only enables or disables the row; the
        # grant/revoke meaning lives in the action column
        query = f"""
            SELECT up.user_id::text, p.name AS permission_name,
                   up.valid_from, up.valid_until, up.granted_by::text, up.notes
            FROM {self._table('user_permissions')} up
            JOIN {self._table('permissions')} p ON p.id = up.permission_id
            WHERE up.user_id = $1::uuid
              AND up.action = $2
              AND up.is_active = true
        """
        action = OverrideAction(action)
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, user_id, action.value)
            return [self._build_override_from_row(row, action) for row in rows]
        except Exception as e:
            logger.error(f"Failed to get {action.value} overrides for user {user_id}: {e}")
            raise

    async def get_resource_access(self, user_id: str) -> List[ResourceAccess]:
        query = f"""
            SELECT user_id::text, resource_type, resource_id::text, access_level::text
            FROM {self._table('resource_access')}
            WHERE user_id = $1::uuid AND access_level::text <> 'none'
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, user_id)
            return [
                ResourceAccess(
                    user_id=row['user_id'],
                    resource_type=row['resource_type'],
                    resource_id=row['resource_id'],
                    access_level=row['access_level'],
                )
                for row in rows
            ]
        except Exception as e:
            logger.error(f"Failed to get resource access for user {user_id}: {e}")
            raise

    async def get_role(self, role_id: str) -> Optional[Role]:
        role_query = f"""
            SELECT id::text, name, organization_id::text, is_system_role,
                   is_active, sort_order, description
            FROM {self._table('roles')}
            WHERE id = $1::uuid
        """
        permissions_query = f"""
            SELECT p.name
            FROM {self._table('role_permissions')} rp
            JOIN {self._table('permissions')} p ON p.id = rp.permission_id
            WHERE rp.role_id = $1::uuid
        """
        parents_query = f"""
            SELECT parent_role_id::text
            FROM {self._table('role_hierarchy')}
            WHERE child_role_id = $1::uuid
            ORDER BY parent_role_id
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(role_query, role_id)
                if row is None:
                    return None
                parent_rows = await conn.fetch(parents_query, role_id)
                if row['is_system_role']:
                    kind = SystemRole()
                else:
                    permission_rows = await conn.fetch(permissions_query, role_id)
                    kind = RegularRole(frozenset(r['name'] for r in permission_rows))

            return Role(
                id=row['id'],
                name=row['name'],
                kind=kind,
                organization_id=row['organization_id'],
                parent_role_ids=tuple(r['parent_role_id'] for r in parent_rows),
                priority=row['sort_order'] or 0,
                is_active=row['is_active'],
                description=row['description'],
            )
        except Exception as e:
            logger.error(f"Failed to get role {role_id}: {e}")
            raise

    async def list_permissions(self) -> List[Permission]:
        query = f"""
            SELECT p.name, p.resource, p.action, p.priority, p.is_active,
                   p.description, g.name AS category,
                   (p.scope = 'system') AS is_system,
                   ARRAY(
                       SELECT d.name
                       FROM {self._table('permissions')} d
                       WHERE d.id = ANY(p.depends_on)
                       ORDER BY d.name
                   ) AS depends_on
            FROM {self._table('permissions')} p
            LEFT JOIN {self._table('permission_groups')} g ON g.id = p.group_id
            ORDER BY p.name
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query)
            return [self._build_permission_from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to list permissions: {e}")
            raise

    async def get_user_ids_with_role(self, role_id: str) -> List[str]:
        query = f"""
            SELECT DISTINCT user_id::text
            FROM {self._table('user_roles')}
            WHERE role_id = $1::uuid
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, role_id)
            return [row['user_id'] for row in rows]
        except Exception as e:
            logger.error(f"Failed to get users with role {role_id}: {e}")
            raise
