"""
Wiring for the authorization core.

Builds one explicitly owned cache and facade per call; nothing is kept in
module-level state.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

import asyncpg
import redis.asyncio as redis

from .config.settings import AuthzSettings, get_settings
from .core.exceptions import ConfigurationError
from .features.cache import AsyncPGSnapshotStore, MemorySnapshotTier, RedisSnapshotStore, SnapshotCache, SnapshotStore
from .features.permissions.entities import GrantRepository, GrantWriter
from .features.permissions.repositories import AsyncPGGrantRepository, AsyncPGGrantWriter, TimedGrantRepository
from .features.permissions.services import (
    AuthorizationService,
    EffectivePermissionResolver,
    GrantAccessors,
    PermissionCatalog,
    RoleGraphResolver,
)
from .utils import utc_now


logger = logging.getLogger(__name__)


def _build_durable_tier(
    settings: AuthzSettings,
    pool: Optional[asyncpg.Pool],
    redis_client: Optional[redis.Redis],
) -> Optional[SnapshotStore]:
    backend = settings.durable_backend
    if backend == "none":
        return None

    if backend == "redis":
        if redis_client is None:
            if not settings.redis_url:
                raise ConfigurationError(
                    "Redis durable cache selected but no redis client or AUTHZ_REDIS_URL configured"
                )
            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        return RedisSnapshotStore(redis_client, key_prefix=settings.redis_key_prefix)

    if pool is None:
        logger.warning("No database pool for the durable permission cache; using memory-only caching")
        return None
    return AsyncPGSnapshotStore(pool)


async def create_authorization_service(
    settings: Optional[AuthzSettings] = None,
    pool: Optional[asyncpg.Pool] = None,
    redis_client: Optional[redis.Redis] = None,
    repository: Optional[GrantRepository] = None,
    writer: Optional[GrantWriter] = None,
    durable: Optional[SnapshotStore] = None,
    clock: Callable[[], datetime] = utc_now,
) -> AuthorizationService:
    """Create a fully wired AuthorizationService.

    The permission catalog is loaded from the grant store before the service
    is returned; a dependency cycle in the stored definitions aborts startup.

    Args:
        settings: Settings (defaults to environment settings)
        pool: asyncpg pool; created from ``database_url`` when omitted and
            no repository is given
        redis_client: Redis client for the ``redis`` durable backend
        repository: Grant store override (e.g. for tests)
        writer: Grant writer override
        durable: Durable tier override; bypasses ``durable_backend``
        clock: Source of the evaluation instant

    Raises:
        ConfigurationError: on missing store configuration or invalid catalog
    """
    settings = settings or get_settings()

    if repository is None:
        if pool is None:
            if not settings.database_url:
                raise ConfigurationError("No grant repository, database pool or AUTHZ_DATABASE_URL configured")
            pool = await asyncpg.create_pool(settings.database_url)
            logger.info("Created database pool for the grant store")
        repository = AsyncPGGrantRepository(pool)
        if writer is None:
            writer = AsyncPGGrantWriter(pool)

    timed_repository = TimedGrantRepository(repository, settings.store_timeout_seconds)

    catalog = PermissionCatalog(hidden_permissions=settings.hidden_permissions)
    await catalog.load(timed_repository)

    if durable is None:
        durable = _build_durable_tier(settings, pool, redis_client)

    cache = SnapshotCache(
        memory=MemorySnapshotTier(
            max_entries=settings.memory_max_entries,
            eviction_ratio=settings.memory_eviction_ratio,
        ),
        durable=durable,
        settings=settings,
        clock=clock,
    )

    role_graph = RoleGraphResolver(timed_repository, catalog)
    resolver = EffectivePermissionResolver(
        GrantAccessors(timed_repository),
        role_graph,
        catalog=catalog,
        clock=clock,
    )

    logger.info(
        f"Authorization service ready: {len(catalog)} permissions, "
        f"durable cache={type(durable).__name__ if durable else 'disabled'}"
    )
    return AuthorizationService(
        resolver=resolver,
        cache=cache,
        catalog=catalog,
        role_graph=role_graph,
        repository=timed_repository,
        settings=settings,
        writer=writer,
    )
