"""
Redis Cart Repository

Persistent basket storage for staging/production. Each basket is one JSON
string under ``cart:{tenant}:{table}`` with a sliding TTL, so abandoned
baskets expire on their own.
"""

import json
import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from dineops.core.config import get_settings
from dineops.core.exceptions import WriteFailure
from dineops.schemas import CartLine
from dineops.services.cart.base import BaseCartRepository, cart_key

logger = logging.getLogger(__name__)


class RedisCartRepository(BaseCartRepository):

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        ttl_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.client = client or aioredis.from_url(settings.redis_url, decode_responses=True)
        self.ttl_seconds = ttl_seconds or settings.cart_ttl_seconds
        logger.info(f"RedisCartRepository initialized (ttl={self.ttl_seconds}s)")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def load(self, tenant_id: str, table_no: str) -> list[CartLine]:
        try:
            raw = await self.client.get(cart_key(tenant_id, table_no))
        except RedisError as e:
            logger.error(f"Could not read basket {tenant_id}/{table_no}: {e}")
            raise WriteFailure("Basket storage is unavailable", detail=str(e)) from e
        if not raw:
            return []
        return [CartLine.model_validate(line) for line in json.loads(raw)]

    async def save(self, tenant_id: str, table_no: str, lines: list[CartLine]) -> None:
        key = cart_key(tenant_id, table_no)
        try:
            if not lines:
                await self.client.delete(key)
                return
            payload = json.dumps([line.model_dump() for line in lines])
            await self.client.set(key, payload, ex=self.ttl_seconds)
        except RedisError as e:
            logger.error(f"Could not write basket {tenant_id}/{table_no}: {e}")
            raise WriteFailure("Basket storage is unavailable", detail=str(e)) from e

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
