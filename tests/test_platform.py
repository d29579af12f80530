"""
RestaurantPlatform operations used by the admin panel, the customer menu
and the operator console.
"""

import asyncio
from datetime import timedelta

import pytest

from dineops.core.exceptions import EntitlementBlocked, InvalidTransition, NotFound, ValidationError
from dineops.core.config import get_settings
from dineops.schemas import (
    BuyNowRequest,
    CustomerInfo,
    FoodUpdate,
    Order,
    OrderCommitRequest,
    OrderStatus,
    RestaurantCreate,
    StaffCreate,
    SubscriptionState,
    TableCreate,
)

RAVI = CustomerInfo(name="Ravi", phone="9998887771")


class TestDirectory:

    async def test_onboarding_creates_restaurant_and_admin(self, platform, store, restaurant):
        [admin] = await store.find_global("admins", restaurant_id=restaurant.id)
        assert admin["email"] == "owner@spiceroute.in"
        assert restaurant.plan is None
        assert not restaurant.is_blocked

    async def test_duplicate_admin_email(self, platform, restaurant):
        with pytest.raises(ValidationError):
            await platform.onboard_restaurant(RestaurantCreate(name="Copy", admin_email="Owner@SpiceRoute.in"))

    async def test_block_and_unblock(self, platform, restaurant, clock):
        blocked = await platform.block_restaurant(restaurant.id)
        assert blocked.is_blocked
        assert blocked.blocked_at == clock.now
        assert blocked.blocked_reason == "Blocked by Super Admin"

        with pytest.raises(EntitlementBlocked):
            await platform.require_active(restaurant.id)

        unblocked = await platform.unblock_restaurant(restaurant.id)
        assert not unblocked.is_blocked
        assert unblocked.blocked_at is None
        assert unblocked.blocked_reason is None
        assert await platform.require_active(restaurant.id)

    async def test_block_unknown_restaurant(self, platform):
        with pytest.raises(NotFound):
            await platform.block_restaurant("rst_missing", "x")


class TestSubscription:

    async def test_new_restaurant_has_no_plan(self, platform, restaurant):
        status = await platform.get_subscription_status(restaurant.id)
        assert status.state == SubscriptionState.NONE

    async def test_upgrade_then_expire(self, platform, restaurant, clock):
        upgraded = await platform.upgrade_plan(restaurant.id, "pro")
        assert upgraded.plan.name == "Professional"
        assert (await platform.get_subscription_status(restaurant.id)).days_remaining == 30

        clock.advance(days=29)
        status = await platform.get_subscription_status(restaurant.id)
        assert (status.state, status.days_remaining) == (SubscriptionState.EXPIRING, 1)

        clock.advance(days=2)
        assert (await platform.get_subscription_status(restaurant.id)).state == SubscriptionState.EXPIRED

    async def test_upgrade_keeps_other_fields(self, platform, restaurant):
        await platform.block_restaurant(restaurant.id, "late payment")
        upgraded = await platform.upgrade_plan(restaurant.id, "basic")
        assert upgraded.name == "Spice Route"
        assert upgraded.is_blocked


class TestOrders:

    async def test_checkout_then_manage_orders(self, platform, restaurant, menu, clock):
        await platform.add_to_cart(restaurant.id, "4", menu["Biryani"].id, 2)
        first = await platform.checkout(restaurant.id, "4", RAVI)
        clock.advance(minutes=10)
        await platform.add_to_cart(restaurant.id, "4", menu["Butter Naan"].id, 3)
        second = await platform.checkout(restaurant.id, "4", RAVI)

        orders = await platform.list_orders(restaurant.id)
        assert [o.id for o in orders] == second.order_ids + first.order_ids

        order = await platform.update_order_status(restaurant.id, first.order_ids[0], OrderStatus.PREPARING)
        assert order.status == OrderStatus.PREPARING
        with pytest.raises(InvalidTransition):
            await platform.update_order_status(restaurant.id, first.order_ids[0], OrderStatus.PENDING)

        preparing = await platform.list_orders(restaurant.id, status=OrderStatus.PREPARING)
        assert [o.id for o in preparing] == first.order_ids

        await platform.delete_order(restaurant.id, second.order_ids[0])
        assert [o.id for o in await platform.list_orders(restaurant.id)] == first.order_ids

    async def test_commit_order_with_explicit_lines(self, platform, restaurant):
        result = await platform.commit_order(restaurant.id, OrderCommitRequest(
            table_no="4",
            customer=RAVI,
            lines=[{"food_id": "food_x", "title": "Thali", "price": 320, "quantity": 1}],
            commit_id="web-1",
        ))
        assert result.total == 320
        assert (await platform.get_receipt(restaurant.id, "web-1")).order_ids == result.order_ids
        assert [r.id for r in await platform.list_receipts(restaurant.id)] == ["web-1"]

    async def test_buy_now(self, platform, restaurant, menu):
        result = await platform.buy_now(restaurant.id, "4", BuyNowRequest(
            food_id=menu["Biryani"].id, quantity=2, customer=RAVI,
        ))
        [order] = await platform.list_orders(restaurant.id)
        assert order.status == OrderStatus.PAID
        assert result.total == 500

    async def test_unavailable_food_cannot_be_added(self, platform, restaurant, menu):
        await platform.update_food(restaurant.id, menu["Biryani"].id, FoodUpdate(is_available=False))
        with pytest.raises(ValidationError):
            await platform.add_to_cart(restaurant.id, "4", menu["Biryani"].id)

    async def test_unknown_food(self, platform, restaurant):
        with pytest.raises(NotFound):
            await platform.add_to_cart(restaurant.id, "4", "food_missing")

    async def test_basket_needs_a_registered_table(self, platform, restaurant, menu, carts):
        with pytest.raises(NotFound):
            await platform.add_to_cart(restaurant.id, "99", menu["Biryani"].id)
        with pytest.raises(NotFound):
            await platform.get_cart(restaurant.id, "99")
        with pytest.raises(NotFound):
            await platform.clear_cart(restaurant.id, "99")

        assert await carts.load(restaurant.id, "99") == []
        assert await platform.get_cart(restaurant.id, " 4 ") == []


class TestMenuTablesStaff:

    async def test_food_without_image_gets_placeholder(self, menu):
        assert menu["Butter Naan"].images == [get_settings().placeholder_image_url]
        assert menu["Biryani"].images == ["https://cdn.test/biryani.jpg"]

    async def test_update_food_merges(self, platform, restaurant, menu):
        food = await platform.update_food(restaurant.id, menu["Biryani"].id, FoodUpdate(price=270))
        assert food.price == 270
        assert food.category == "Main Course"

    async def test_filter_by_category(self, platform, restaurant, menu):
        breads = await platform.list_foods(restaurant.id, category="Breads")
        assert [f.name for f in breads] == ["Butter Naan"]

    async def test_table_numbers_are_unique(self, platform, restaurant):
        with pytest.raises(ValidationError):
            await platform.create_table(restaurant.id, TableCreate(number=4))
        await platform.create_table(restaurant.id, TableCreate(number=2))
        assert [t.number for t in await platform.list_tables(restaurant.id)] == [2, 4]

    async def test_deletes_are_idempotent(self, platform, restaurant, menu):
        [table] = await platform.list_tables(restaurant.id)
        await platform.delete_table(restaurant.id, table.id)
        await platform.delete_table(restaurant.id, table.id)
        await platform.delete_food(restaurant.id, menu["Biryani"].id)
        await platform.delete_food(restaurant.id, menu["Biryani"].id)

        assert await platform.list_tables(restaurant.id) == []
        assert [f.name for f in await platform.list_foods(restaurant.id)] == ["Butter Naan"]
        with pytest.raises(NotFound):
            await platform.get_food(restaurant.id, menu["Biryani"].id)

    async def test_staff_soft_delete(self, platform, restaurant):
        staff = await platform.create_staff(restaurant.id, StaffCreate(
            full_name="Asha Rao", mobile="9876543210", designation="Chef",
        ))
        await platform.deactivate_staff(restaurant.id, staff.id)

        assert await platform.list_staff(restaurant.id) == []
        [inactive] = await platform.list_staff(restaurant.id, include_inactive=True)
        assert inactive.full_name == "Asha Rao"


class TestStats:

    async def test_stats(self, platform, restaurant, menu):
        await platform.add_to_cart(restaurant.id, "4", menu["Biryani"].id, 2)
        await platform.add_to_cart(restaurant.id, "4", menu["Butter Naan"].id, 1)
        result = await platform.checkout(restaurant.id, "4", RAVI)
        await platform.update_order_status(restaurant.id, result.order_ids[1], OrderStatus.CANCELLED)
        await platform.create_staff(restaurant.id, StaffCreate(
            full_name="Asha Rao", mobile="9876543210", designation="Chef",
        ))

        stats = await platform.get_stats(restaurant.id)

        assert stats.total_sales == 500
        assert stats.total_orders == 2
        assert stats.total_inventory == 2
        assert stats.total_staff == 1
        assert stats.total_categories == 2
        assert stats.orders_by_status == {"pending": 1, "cancelled": 1}


class TestConcurrentStatusUpdates:

    async def test_cancel_wins_over_kitchen_progress(self, any_platform, any_restaurant):
        result = await any_platform.commit_order(any_restaurant.id, OrderCommitRequest(
            table_no="4",
            customer=RAVI,
            lines=[{"food_id": "food_x", "title": "Thali", "price": 320, "quantity": 1}],
        ))
        order_id = result.order_ids[0]

        cancelled, preparing = await asyncio.gather(
            any_platform.update_order_status(any_restaurant.id, order_id, OrderStatus.CANCELLED),
            any_platform.update_order_status(any_restaurant.id, order_id, OrderStatus.PREPARING),
            return_exceptions=True,
        )

        # Whichever lands first, a cancelled order is never revived
        assert isinstance(cancelled, Order) and cancelled.status == OrderStatus.CANCELLED
        assert isinstance(preparing, InvalidTransition) or preparing.status == OrderStatus.PREPARING
        final = await any_platform.get_order(any_restaurant.id, order_id)
        assert final.status == OrderStatus.CANCELLED

    async def test_stale_status_write_is_rejected(self, platform, store, restaurant):
        result = await platform.commit_order(restaurant.id, OrderCommitRequest(
            table_no="4",
            customer=RAVI,
            lines=[{"food_id": "food_x", "title": "Thali", "price": 320, "quantity": 1}],
        ))
        order_id = result.order_ids[0]
        await platform.update_order_status(restaurant.id, order_id, OrderStatus.CANCELLED)

        with pytest.raises(InvalidTransition):
            await platform.update_order_status(restaurant.id, order_id, OrderStatus.PREPARING)
        assert (await store.get(restaurant.id, "orders", order_id))["status"] == "cancelled"
