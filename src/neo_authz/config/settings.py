"""
Runtime settings for the authorization core.

Values are read from the environment (prefix ``AUTHZ_``) or a local ``.env``
file, following the same pydantic-settings pattern used by the platform
services.
"""
from typing import List, Literal, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

from .constants import SYSTEM_ADMIN_PERMISSION


class AuthzSettings(BaseSettings):
    """Settings for permission resolution, store access and caching."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Snapshot cache
    cache_ttl_seconds: int = Field(default=3600, gt=0)  # 1 hour
    memory_max_entries: int = Field(default=1000, gt=0)
    memory_eviction_ratio: float = Field(default=0.2, gt=0, le=1)
    stale_retry_limit: int = Field(default=3, ge=1)

    # Durable tier
    durable_backend: Literal["postgres", "redis", "none"] = "postgres"
    durable_retry_seconds: float = Field(default=30.0, ge=0)
    redis_url: Optional[str] = None
    redis_key_prefix: str = "neo_authz"

    # Grant store
    database_url: Optional[str] = None
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    store_retry_attempts: int = Field(default=2, ge=1)
    store_retry_backoff_seconds: float = Field(default=0.05, ge=0)

    # Permissions that can never be granted through the write API
    hidden_permissions: List[str] = Field(default_factory=lambda: [SYSTEM_ADMIN_PERMISSION])

    @field_validator("database_url")
    @classmethod
    def strip_driver_suffix(cls, value: Optional[str]) -> Optional[str]:
        """asyncpg expects a plain postgresql:// DSN."""
        if value and "+asyncpg" in value:
            return value.replace("+asyncpg", "")
        return value


@lru_cache()
def get_settings() -> AuthzSettings:
    """Get cached settings instance."""
    return AuthzSettings()
