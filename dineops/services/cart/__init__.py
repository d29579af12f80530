"""
Cart Repository Factory

Returns the basket storage for the current ENV_MODE:
    - development → MemoryCartRepository
    - staging/production → RedisCartRepository
"""

import logging
from functools import lru_cache

from dineops.core.config import get_settings
from dineops.services.cart.base import BaseCartRepository, cart_key
from dineops.services.cart.memory import MemoryCartRepository

logger = logging.getLogger(__name__)


@lru_cache()
def get_cart_repository() -> BaseCartRepository:
    """Get the configured cart repository."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Cart Repository: Using MemoryCartRepository (development mode)")
        return MemoryCartRepository()

    from dineops.services.cart.redis import RedisCartRepository

    logger.info(f"Cart Repository: Using RedisCartRepository ({settings.env_mode.value} mode)")
    return RedisCartRepository()


def reset_cart_repository() -> None:
    """Clear the cached repository instance."""
    get_cart_repository.cache_clear()


__all__ = [
    "get_cart_repository",
    "reset_cart_repository",
    "BaseCartRepository",
    "MemoryCartRepository",
    "cart_key",
]
