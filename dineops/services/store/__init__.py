"""
Tenant Store Factory

Provides a single entry point for obtaining the tenant store.

Environment Switching:
    - ENV_MODE=development → MemoryTenantStore
    - ENV_MODE=staging/production → SqlTenantStore (DATABASE_URL) whose
      changes are relayed between processes by RedisChangeFeed (REDIS_URL)
"""

import logging
from functools import lru_cache

from dineops.core.config import get_settings
from dineops.services.store.base import (
    BaseTenantStore,
    WriteBatch,
    GLOBAL_NAMESPACE,
    TENANT_COLLECTIONS,
    GLOBAL_COLLECTIONS,
)
from dineops.services.store.events import ChangeEvent, ChangeFeed, Subscription
from dineops.services.store.memory import MemoryTenantStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_tenant_store() -> BaseTenantStore:
    """
    Get the configured tenant store instance (cached).

    Returns:
        BaseTenantStore: MemoryTenantStore or SqlTenantStore
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Tenant Store: Using MemoryTenantStore (development mode)")
        return MemoryTenantStore()

    from dineops.database import get_session_maker
    from dineops.services.store.redis_feed import RedisChangeFeed
    from dineops.services.store.sql import SqlTenantStore

    logger.info(f"Tenant Store: Using SqlTenantStore ({settings.env_mode.value} mode)")
    return SqlTenantStore(get_session_maker(), feed=RedisChangeFeed())


def reset_tenant_store() -> None:
    """Clear the cached store instance."""
    get_tenant_store.cache_clear()


__all__ = [
    "get_tenant_store",
    "reset_tenant_store",
    "BaseTenantStore",
    "MemoryTenantStore",
    "WriteBatch",
    "ChangeEvent",
    "ChangeFeed",
    "Subscription",
    "GLOBAL_NAMESPACE",
    "TENANT_COLLECTIONS",
    "GLOBAL_COLLECTIONS",
]
