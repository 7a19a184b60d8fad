"""Permission domain entity.

A permission is identified by its namespaced name ``resource.action``; the
name is the natural key and is globally unique. Permissions are immutable
once referenced, hence a frozen dataclass.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from ....config.constants import PERMISSION_SEPARATOR
from ....core.exceptions import ConfigurationError, InvalidPermissionNameError


def split_permission_name(name: str) -> Tuple[str, str]:
    """Split ``resource.action`` into its parts, validating the format."""
    if not name or not isinstance(name, str):
        raise InvalidPermissionNameError(f"Permission name must be a non-empty string, got: {name!r}")

    parts = name.split(PERMISSION_SEPARATOR)
    if len(parts) != 2:
        raise InvalidPermissionNameError(
            f"Permission name must be in format 'resource.action', got: {name}"
        )

    resource, action = parts
    if not resource or not action:
        raise InvalidPermissionNameError(f"Both resource and action must be non-empty, got: {name}")
    return resource, action


@dataclass(frozen=True)
class Permission:
    """Domain entity representing a registered permission."""

    name: str
    resource: Optional[str] = None
    action: Optional[str] = None
    category: str = "general"
    priority: int = 0
    depends_on: Tuple[str, ...] = field(default_factory=tuple)
    is_system: bool = False
    is_active: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        """Derive resource/action from the name and check consistency."""
        resource, action = split_permission_name(self.name)

        if self.resource is None:
            object.__setattr__(self, "resource", resource)
        elif self.resource != resource:
            raise InvalidPermissionNameError(
                f"Permission resource mismatch: name={resource}, field={self.resource}"
            )

        if self.action is None:
            object.__setattr__(self, "action", action)
        elif self.action != action:
            raise InvalidPermissionNameError(
                f"Permission action mismatch: name={action}, field={self.action}"
            )

        # Lists from the store become tuples so the entity stays hashable
        object.__setattr__(self, "depends_on", tuple(self.depends_on or ()))
        if self.name in self.depends_on:
            raise ConfigurationError(
                f"Permission {self.name} cannot depend on itself",
                details={"permission": self.name},
            )

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        flags = []
        if self.is_system:
            flags.append("system")
        if not self.is_active:
            flags.append("inactive")
        flag_info = f" [{', '.join(flags)}]" if flags else ""
        return f"Permission({self.name}, category={self.category}, priority={self.priority}{flag_info})"
