"""
Order Builder

Maintains one table's basket through an injected cart repository.
Adding the same food twice yields two lines; lines are removed one at a
time by index.
"""

import logging

from dineops.core.exceptions import NotFound, ValidationError
from dineops.schemas import CartLine, Food
from dineops.services.cart.base import BaseCartRepository

logger = logging.getLogger(__name__)


def line_from_food(food: Food, quantity: int) -> CartLine:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", field="quantity")
    return CartLine(
        food_id=food.id,
        title=food.name,
        price=food.price,
        quantity=quantity,
        image_url=food.images[0] if food.images else "",
        category=food.category,
    )


def basket_total(lines: list[CartLine]) -> float:
    return round(sum(line.price * line.quantity for line in lines), 2)


class OrderBuilder:
    """
    Basket for one (restaurant, table).

    Example:
        >>> builder = OrderBuilder(get_cart_repository(), "rst_1", "4")
        >>> await builder.add_line(biryani, 2)
        >>> await builder.total()
        500.0
    """

    def __init__(self, repository: BaseCartRepository, tenant_id: str, table_no: str):
        self.repository = repository
        self.tenant_id = tenant_id
        self.table_no = str(table_no)

    async def lines(self) -> list[CartLine]:
        return await self.repository.load(self.tenant_id, self.table_no)

    async def add_line(self, food: Food, quantity: int = 1) -> list[CartLine]:
        line = line_from_food(food, quantity)
        lines = await self.lines()
        lines.append(line)
        await self.repository.save(self.tenant_id, self.table_no, lines)
        logger.debug(f"Basket {self.tenant_id}/{self.table_no}: +{quantity} x {food.name}")
        return lines

    async def remove_line(self, index: int) -> list[CartLine]:
        lines = await self.lines()
        if index < 0 or index >= len(lines):
            raise NotFound("cart line", index)
        del lines[index]
        await self.repository.save(self.tenant_id, self.table_no, lines)
        return lines

    async def total(self) -> float:
        return basket_total(await self.lines())

    async def clear(self) -> None:
        await self.repository.clear(self.tenant_id, self.table_no)
