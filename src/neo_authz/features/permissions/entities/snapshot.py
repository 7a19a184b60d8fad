"""Effective permission snapshot.

A snapshot is the derived, cached result of merging role, override and
resource-ACL sources for one user in one scope. It is never edited by hand:
it is computed, hashed, cached and eventually discarded.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from ....config.constants import AccessLevel
from ....core.exceptions import CacheSerializationError
from .grants import ResourceAccess


def compute_content_hash(
    permission_names: Iterable[str],
    all_permissions: bool,
    resource_access: Iterable[ResourceAccess],
    role_ids: Iterable[str] = (),
) -> str:
    """Hash the sorted inputs of a snapshot.

    Identical grant sets always produce identical hashes regardless of the
    order in which the store returned them. User and scope are not part of
    the hash; readers compare them against the requested key.
    """
    payload = {
        "all": bool(all_permissions),
        "permissions": sorted(set(permission_names)),
        "roles": sorted(set(role_ids)),
        "resources": sorted(
            {(ra.resource_type, ra.resource_id, ra.access_level.value) for ra in resource_access}
        ),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


@dataclass(frozen=True)
class ResolvedPermissions:
    """Output of the effective-permission resolver before caching."""

    user_id: str
    scope_key: str
    permission_names: FrozenSet[str]
    all_permissions: bool = False
    role_ids: Tuple[str, ...] = ()
    granted: FrozenSet[str] = frozenset()
    revoked: FrozenSet[str] = frozenset()
    resource_access: Tuple[ResourceAccess, ...] = ()


@dataclass(frozen=True)
class EffectivePermissionSnapshot:
    """Cached effective permissions of a user in a scope."""

    user_id: str
    scope_key: str
    permission_names: FrozenSet[str]
    computed_at: datetime
    expires_at: datetime
    content_hash: str
    all_permissions: bool = False
    role_ids: Tuple[str, ...] = ()
    resource_access: Tuple[ResourceAccess, ...] = field(default_factory=tuple)

    @classmethod
    def from_resolved(
        cls,
        resolved: ResolvedPermissions,
        computed_at: datetime,
        ttl_seconds: int,
    ) -> "EffectivePermissionSnapshot":
        """Build a snapshot expiring ``ttl_seconds`` after ``computed_at``."""
        return cls(
            user_id=resolved.user_id,
            scope_key=resolved.scope_key,
            permission_names=frozenset(resolved.permission_names),
            computed_at=computed_at,
            expires_at=computed_at + timedelta(seconds=ttl_seconds),
            content_hash=compute_content_hash(
                resolved.permission_names,
                resolved.all_permissions,
                resolved.resource_access,
                resolved.role_ids,
            ),
            all_permissions=resolved.all_permissions,
            role_ids=tuple(sorted(resolved.role_ids)),
            resource_access=tuple(resolved.resource_access),
        )

    def is_expired(self, now: datetime) -> bool:
        """A snapshot at or past its expiry is treated as absent."""
        return now >= self.expires_at

    def has_permission(self, permission_name: str) -> bool:
        return self.all_permissions or permission_name in self.permission_names

    def has_role(self, role_id: str) -> bool:
        """Direct, in-scope role membership; inherited roles do not count."""
        return role_id in self.role_ids

    def has_resource_access(self, resource_type: str, resource_id: str, required: AccessLevel) -> bool:
        return any(ra.grants(resource_type, resource_id, required) for ra in self.resource_access)

    def verify_hash(self) -> bool:
        """Check the stored hash against the snapshot content."""
        return self.content_hash == compute_content_hash(
            self.permission_names, self.all_permissions, self.resource_access, self.role_ids
        )

    def sorted_permissions(self) -> Tuple[str, ...]:
        return tuple(sorted(self.permission_names))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible representation for the durable tier."""
        return {
            "user_id": self.user_id,
            "scope_key": self.scope_key,
            "permission_names": sorted(self.permission_names),
            "all_permissions": self.all_permissions,
            "role_ids": list(self.role_ids),
            "resource_access": [
                {
                    "resource_type": ra.resource_type,
                    "resource_id": ra.resource_id,
                    "access_level": ra.access_level.value,
                }
                for ra in self.resource_access
            ],
            "computed_at": self.computed_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EffectivePermissionSnapshot":
        """Rebuild a snapshot from its durable representation."""
        try:
            user_id = str(data["user_id"])
            return cls(
                user_id=user_id,
                scope_key=data["scope_key"],
                permission_names=frozenset(data.get("permission_names", [])),
                computed_at=datetime.fromisoformat(data["computed_at"]),
                expires_at=datetime.fromisoformat(data["expires_at"]),
                content_hash=data["content_hash"],
                all_permissions=bool(data.get("all_permissions", False)),
                role_ids=tuple(data.get("role_ids", [])),
                resource_access=tuple(
                    ResourceAccess(
                        user_id=user_id,
                        resource_type=item["resource_type"],
                        resource_id=item["resource_id"],
                        access_level=AccessLevel(item["access_level"]),
                    )
                    for item in data.get("resource_access", [])
                ),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheSerializationError(f"Malformed permission snapshot: {e}")

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "EffectivePermissionSnapshot":
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError as e:
            raise CacheSerializationError(f"Snapshot is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise CacheSerializationError("Snapshot payload must be a JSON object")
        return cls.from_dict(data)
