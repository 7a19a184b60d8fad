"""Configuration for neo-authz."""

from .settings import AuthzSettings, get_settings
from .constants import (
    AccessLevel,
    OverrideAction,
    CacheKeys,
    ACTION_ACCESS_LEVELS,
    GLOBAL_SCOPE,
    PERMISSION_SEPARATOR,
    SYSTEM_ADMIN_PERMISSION,
    action_access_level,
)
from .logging_config import LoggingConfig, setup_logging, get_logger

__all__ = [
    "AuthzSettings",
    "get_settings",
    "AccessLevel",
    "OverrideAction",
    "CacheKeys",
    "ACTION_ACCESS_LEVELS",
    "GLOBAL_SCOPE",
    "PERMISSION_SEPARATOR",
    "SYSTEM_ADMIN_PERMISSION",
    "action_access_level",
    "LoggingConfig",
    "setup_logging",
    "get_logger",
]
