"""
Restaurant Platform

The operations the admin panel, the customer menu and the platform
operator console call. Each method takes the restaurant id explicitly and
works only inside that restaurant's namespace; directory changes (onboard,
block, plan upgrade) go through the store's global operations.
"""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional

from dineops.core import utc_now
from dineops.core.config import get_settings
from dineops.core.exceptions import NotFound, ValidationError, WriteConflict
from dineops.schemas import (
    AdminAccount,
    BroadcastResponse,
    BuyNowRequest,
    CartLine,
    CommitResult,
    CustomerInfo,
    Food,
    FoodCreate,
    FoodUpdate,
    Notification,
    Order,
    OrderCommitRequest,
    OrderStatus,
    Receipt,
    Restaurant,
    RestaurantCreate,
    Staff,
    StaffCreate,
    StatsResponse,
    SubscriptionStatus,
    Table,
    TableCreate,
)
from dineops.services.cart import get_cart_repository
from dineops.services.cart.base import BaseCartRepository
from dineops.services.entitlements import ensure_not_blocked
from dineops.services.notifications import NotificationEmitter
from dineops.services.orders import (
    OrderBuilder,
    OrderCommitPipeline,
    assert_transition,
)
from dineops.services.receipts import get_receipt_renderer
from dineops.services.receipts.base import BaseReceiptRenderer
from dineops.services.store import get_tenant_store
from dineops.services.store.base import BaseTenantStore
from dineops.services.subscriptions import SubscriptionLedger, get_plan_offer

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_REASON = "Blocked by Super Admin"

STATUS_UPDATE_ATTEMPTS = 3

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(documents: list, model):
    items = [model.model_validate(doc) for doc in documents]

    def created(item):
        value = item.created_at
        if value is None:
            return _EPOCH
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    items.sort(key=created, reverse=True)
    return items


class RestaurantPlatform:
    """
    Example:
        >>> platform = get_platform()
        >>> restaurant = await platform.onboard_restaurant(RestaurantCreate(...))
        >>> await platform.upgrade_plan(restaurant.id, "pro")
    """

    def __init__(
        self,
        store: BaseTenantStore,
        carts: BaseCartRepository,
        renderer: BaseReceiptRenderer,
        clock: Callable[[], datetime] = utc_now,
        ledger: Optional[SubscriptionLedger] = None,
    ):
        self.store = store
        self.carts = carts
        self.renderer = renderer
        self.clock = clock
        self.ledger = ledger or SubscriptionLedger.from_settings()
        self.pipeline = OrderCommitPipeline(store, carts, renderer, clock=clock)
        self.notifications = NotificationEmitter(store, self.ledger, clock=clock)

    # =========================================================================
    # RESTAURANT DIRECTORY (platform operator)
    # =========================================================================

    async def onboard_restaurant(self, request: RestaurantCreate) -> Restaurant:
        email = request.admin_email.strip().lower()
        if await self.store.find_global("admins", email=email):
            raise ValidationError(f"An admin with email {email} already exists", field="admin_email")

        now = self.clock()
        restaurant = Restaurant(
            name=request.name.strip(),
            address=request.address,
            phone=request.phone,
            email=request.email,
            created_at=now,
            updated_at=now,
        )
        async with self.store.batch_global() as batch:
            restaurant_id = batch.put("restaurants", restaurant)
            batch.put("admins", AdminAccount(
                email=email,
                name=request.admin_name,
                restaurant_id=restaurant_id,
                created_at=now,
            ))

        logger.info(f"Restaurant onboarded: {restaurant.name} ({restaurant_id})")
        return await self.get_restaurant(restaurant_id)

    async def list_restaurants(self) -> list[Restaurant]:
        return _newest_first(await self.store.get_global("restaurants"), Restaurant)

    async def get_restaurant(self, tenant_id: str) -> Restaurant:
        return Restaurant.model_validate(await self.store.get_global("restaurants", tenant_id))

    async def require_active(self, tenant_id: str) -> Restaurant:
        """
        Raises:
            NotFound: Unknown restaurant
            EntitlementBlocked: The restaurant is blocked
        """
        return ensure_not_blocked(await self.get_restaurant(tenant_id))

    async def block_restaurant(self, tenant_id: str, reason: Optional[str] = None) -> Restaurant:
        await self.get_restaurant(tenant_id)
        now = self.clock()
        await self.store.put_global("restaurants", {
            "is_blocked": True,
            "blocked_at": now,
            "blocked_reason": reason or DEFAULT_BLOCK_REASON,
            "updated_at": now,
        }, doc_id=tenant_id)
        logger.warning(f"Restaurant {tenant_id} blocked: {reason or DEFAULT_BLOCK_REASON}")
        return await self.get_restaurant(tenant_id)

    async def unblock_restaurant(self, tenant_id: str) -> Restaurant:
        await self.get_restaurant(tenant_id)
        await self.store.put_global("restaurants", {
            "is_blocked": False,
            "blocked_at": None,
            "blocked_reason": None,
            "updated_at": self.clock(),
        }, doc_id=tenant_id)
        logger.info(f"Restaurant {tenant_id} unblocked")
        return await self.get_restaurant(tenant_id)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    async def get_subscription_status(self, tenant_id: str) -> SubscriptionStatus:
        return self.ledger.status(await self.get_restaurant(tenant_id), self.clock())

    async def upgrade_plan(self, tenant_id: str, plan_id: str) -> Restaurant:
        offer = get_plan_offer(plan_id)
        restaurant = self.ledger.upgrade(await self.get_restaurant(tenant_id), offer, self.clock())
        await self.store.put_global(
            "restaurants",
            {"plan": restaurant.plan, "updated_at": restaurant.updated_at},
            doc_id=tenant_id,
        )
        logger.info(f"Restaurant {tenant_id} upgraded to {offer.name}")
        return await self.get_restaurant(tenant_id)

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def list_orders(self, tenant_id: str, status: Optional[OrderStatus] = None) -> list[Order]:
        if status is None:
            documents = await self.store.get(tenant_id, "orders")
        else:
            documents = await self.store.find(tenant_id, "orders", status=OrderStatus(status).value)
        return _newest_first(documents, Order)

    async def get_order(self, tenant_id: str, order_id: str) -> Order:
        return Order.model_validate(await self.store.get(tenant_id, "orders", order_id))

    async def delete_order(self, tenant_id: str, order_id: str) -> None:
        await self.store.remove(tenant_id, "orders", order_id)
        logger.info(f"Order {order_id} deleted from {tenant_id}")

    async def update_order_status(self, tenant_id: str, order_id: str, status: OrderStatus) -> Order:
        """
        Move an order along the status machine.

        The write only applies while the order still has the status the
        transition was checked against; if another update got there first
        the order is re-read and the transition checked again.

        Raises:
            NotFound: Unknown order
            InvalidTransition: The machine has no edge from the current status
        """
        for _ in range(STATUS_UPDATE_ATTEMPTS):
            order = await self.get_order(tenant_id, order_id)
            target = assert_transition(order.status, status)
            try:
                await self.store.put(tenant_id, "orders", {
                    "status": target.value,
                    "updated_at": self.clock(),
                }, doc_id=order_id, expected={"status": order.status.value})
            except WriteConflict as e:
                logger.info(f"Order {order_id} changed while updating, re-checking: {e.reason}")
                continue
            logger.info(f"Order {order_id}: {order.status.value} -> {target.value}")
            return await self.get_order(tenant_id, order_id)

        raise WriteConflict("orders", order_id, "status keeps changing, please retry")

    async def commit_order(self, tenant_id: str, request: OrderCommitRequest) -> CommitResult:
        return await self.pipeline.commit(
            tenant_id,
            request.table_no,
            request.customer,
            lines=[line.model_dump() for line in request.lines],
            flow=request.flow,
            commit_id=request.commit_id,
        )

    # =========================================================================
    # BASKET AND CHECKOUT
    # =========================================================================

    async def _builder(self, tenant_id: str, table_no: str) -> OrderBuilder:
        # A registered table number is what lets a customer order at all
        await self.pipeline.require_table(tenant_id, table_no)
        return OrderBuilder(self.carts, tenant_id, str(table_no).strip())

    async def get_cart(self, tenant_id: str, table_no: str) -> list[CartLine]:
        return await (await self._builder(tenant_id, table_no)).lines()

    async def add_to_cart(self, tenant_id: str, table_no: str, food_id: str, quantity: int = 1) -> list[CartLine]:
        builder = await self._builder(tenant_id, table_no)
        food = await self.get_food(tenant_id, food_id)
        if not food.is_available:
            raise ValidationError(f"{food.name} is not available", field="food_id")
        return await builder.add_line(food, quantity)

    async def remove_from_cart(self, tenant_id: str, table_no: str, index: int) -> list[CartLine]:
        return await (await self._builder(tenant_id, table_no)).remove_line(index)

    async def clear_cart(self, tenant_id: str, table_no: str) -> None:
        await (await self._builder(tenant_id, table_no)).clear()

    async def checkout(
        self,
        tenant_id: str,
        table_no: str,
        customer: CustomerInfo,
        commit_id: Optional[str] = None,
    ) -> CommitResult:
        return await self.pipeline.commit(tenant_id, table_no, customer, commit_id=commit_id)

    async def buy_now(self, tenant_id: str, table_no: str, request: BuyNowRequest) -> CommitResult:
        food = await self.get_food(tenant_id, request.food_id)
        if not food.is_available:
            raise ValidationError(f"{food.name} is not available", field="food_id")
        return await self.pipeline.buy_now(
            tenant_id,
            table_no,
            request.customer,
            food,
            quantity=request.quantity,
            commit_id=request.commit_id,
        )

    # =========================================================================
    # MENU
    # =========================================================================

    async def list_foods(self, tenant_id: str, category: Optional[str] = None) -> list[Food]:
        if category:
            documents = await self.store.find(tenant_id, "foods", category=category)
        else:
            documents = await self.store.get(tenant_id, "foods")
        return [Food.model_validate(doc) for doc in documents]

    async def get_food(self, tenant_id: str, food_id: str) -> Food:
        return Food.model_validate(await self.store.get(tenant_id, "foods", food_id))

    async def create_food(self, tenant_id: str, request: FoodCreate) -> Food:
        now = self.clock()
        images = [url for url in request.images if url] or [get_settings().placeholder_image_url]
        food = Food(**request.model_dump(exclude={"images"}), images=images, created_at=now, updated_at=now)
        food_id = await self.store.put(tenant_id, "foods", food)
        logger.info(f"Food added to {tenant_id}: {food.name} ({food_id})")
        return await self.get_food(tenant_id, food_id)

    async def update_food(self, tenant_id: str, food_id: str, request: FoodUpdate) -> Food:
        await self.get_food(tenant_id, food_id)
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if "images" in changes:
            changes["images"] = [url for url in changes["images"] if url] or [
                get_settings().placeholder_image_url
            ]
        changes["updated_at"] = self.clock()
        await self.store.put(tenant_id, "foods", changes, doc_id=food_id)
        return await self.get_food(tenant_id, food_id)

    async def delete_food(self, tenant_id: str, food_id: str) -> None:
        await self.store.remove(tenant_id, "foods", food_id)

    # =========================================================================
    # TABLES AND STAFF
    # =========================================================================

    async def list_tables(self, tenant_id: str) -> list[Table]:
        tables = [Table.model_validate(doc) for doc in await self.store.get(tenant_id, "tables")]
        return sorted(tables, key=lambda t: t.number)

    async def create_table(self, tenant_id: str, request: TableCreate) -> Table:
        if await self.store.find(tenant_id, "tables", number=request.number):
            raise ValidationError(f"Table {request.number} already exists", field="number")
        table_id = await self.store.put(tenant_id, "tables", Table(
            number=request.number,
            capacity=request.capacity,
            created_at=self.clock(),
        ))
        return Table.model_validate(await self.store.get(tenant_id, "tables", table_id))

    async def delete_table(self, tenant_id: str, table_id: str) -> None:
        await self.store.remove(tenant_id, "tables", table_id)

    async def list_staff(self, tenant_id: str, include_inactive: bool = False) -> list[Staff]:
        staff = [Staff.model_validate(doc) for doc in await self.store.get(tenant_id, "staff")]
        return staff if include_inactive else [s for s in staff if s.is_active]

    async def create_staff(self, tenant_id: str, request: StaffCreate) -> Staff:
        now = self.clock()
        staff_id = await self.store.put(
            tenant_id, "staff", Staff(**request.model_dump(), created_at=now, updated_at=now)
        )
        return Staff.model_validate(await self.store.get(tenant_id, "staff", staff_id))

    async def deactivate_staff(self, tenant_id: str, staff_id: str) -> Staff:
        await self.store.get(tenant_id, "staff", staff_id)
        await self.store.put(tenant_id, "staff", {
            "is_active": False,
            "updated_at": self.clock(),
        }, doc_id=staff_id)
        return Staff.model_validate(await self.store.get(tenant_id, "staff", staff_id))

    # =========================================================================
    # RECEIPTS, NOTIFICATIONS, STATS
    # =========================================================================

    async def list_receipts(self, tenant_id: str) -> list[Receipt]:
        return _newest_first(await self.store.get(tenant_id, "receipts"), Receipt)

    async def get_receipt(self, tenant_id: str, receipt_id: str) -> Receipt:
        return Receipt.model_validate(await self.store.get(tenant_id, "receipts", receipt_id))

    async def list_notifications(self, tenant_id: str, unread_only: bool = False) -> list[Notification]:
        return await self.notifications.list_notifications(tenant_id, unread_only=unread_only)

    async def mark_notification_read(self, tenant_id: str, notification_id: str) -> Notification:
        return await self.notifications.mark_as_read(tenant_id, notification_id)

    async def delete_notification(self, tenant_id: str, notification_id: str) -> None:
        await self.notifications.delete_notification(tenant_id, notification_id)

    async def broadcast(self, tenant_id: str, title: str, message: str) -> str:
        await self.get_restaurant(tenant_id)
        return await self.notifications.broadcast(tenant_id, title, message)

    async def broadcast_all(self, title: str, message: str) -> BroadcastResponse:
        return await self.notifications.broadcast_all(title, message)

    async def check_all_subscriptions(self) -> dict[str, int]:
        return await self.notifications.check_all_subscriptions()

    async def get_stats(self, tenant_id: str) -> StatsResponse:
        orders = [Order.model_validate(doc) for doc in await self.store.get(tenant_id, "orders")]
        foods = await self.list_foods(tenant_id)
        staff = await self.list_staff(tenant_id)

        by_status: dict[str, int] = {}
        for order in orders:
            by_status[order.status.value] = by_status.get(order.status.value, 0) + 1

        return StatsResponse(
            total_sales=round(sum(o.total for o in orders if o.status != OrderStatus.CANCELLED), 2),
            total_orders=len(orders),
            total_inventory=len(foods),
            total_staff=len(staff),
            total_categories=len({f.category for f in foods}),
            orders_by_status=by_status,
        )


@lru_cache()
def get_platform() -> RestaurantPlatform:
    """Get the platform wired to the configured store, carts and renderer."""
    return RestaurantPlatform(
        get_tenant_store(),
        get_cart_repository(),
        get_receipt_renderer(),
    )


def reset_platform() -> None:
    """Clear the cached platform instance."""
    get_platform.cache_clear()
