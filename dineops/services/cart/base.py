"""
Cart Repository Abstract Base Class

A basket belongs to exactly one (restaurant id, table number) pair and
lives outside the tenant store until checkout. Implementations differ only
in where the lines are kept.
"""

from abc import ABC, abstractmethod

from dineops.schemas import CartLine


def cart_key(tenant_id: str, table_no: str) -> str:
    """Storage key for one table's basket."""
    return f"cart:{tenant_id}:{table_no}"


class BaseCartRepository(ABC):
    """Abstract base class for basket storage."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def load(self, tenant_id: str, table_no: str) -> list[CartLine]:
        """Return the basket's lines (empty list if none)."""
        pass

    @abstractmethod
    async def save(self, tenant_id: str, table_no: str, lines: list[CartLine]) -> None:
        """Replace the basket's lines. An empty list deletes the basket."""
        pass

    async def clear(self, tenant_id: str, table_no: str) -> None:
        await self.save(tenant_id, table_no, [])

    @abstractmethod
    async def health_check(self) -> bool:
        pass
