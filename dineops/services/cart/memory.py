"""
In-Memory Cart Repository

Development and test backing for baskets. Contents are lost on restart.
"""

import logging

from dineops.schemas import CartLine
from dineops.services.cart.base import BaseCartRepository, cart_key

logger = logging.getLogger(__name__)


class MemoryCartRepository(BaseCartRepository):

    def __init__(self):
        self._baskets: dict[str, list[dict]] = {}

    @property
    def provider_name(self) -> str:
        return "memory"

    async def load(self, tenant_id: str, table_no: str) -> list[CartLine]:
        raw = self._baskets.get(cart_key(tenant_id, table_no), [])
        return [CartLine.model_validate(line) for line in raw]

    async def save(self, tenant_id: str, table_no: str, lines: list[CartLine]) -> None:
        key = cart_key(tenant_id, table_no)
        if not lines:
            self._baskets.pop(key, None)
            return
        self._baskets[key] = [line.model_dump() for line in lines]

    async def health_check(self) -> bool:
        return True
