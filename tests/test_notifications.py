"""
Notification emitter: expiry reminders, deduplication and broadcasts.
"""

import asyncio
from datetime import timedelta

import pytest

from dineops.core.exceptions import NotFound
from dineops.schemas import (
    NotificationPriority,
    NotificationType,
    Plan,
    RestaurantCreate,
)
from dineops.services.notifications import BROADCAST_SENDER, NotificationEmitter


async def set_purchase(store, restaurant_id, purchased_at):
    plan = Plan(id="basic", name="Basic", price=999, purchased_at=purchased_at)
    await store.put_global("restaurants", {"plan": plan}, doc_id=restaurant_id)


@pytest.fixture
def emitter(platform):
    return platform.notifications


class TestEmit:

    async def test_same_type_within_window_is_deduplicated(self, emitter, restaurant, clock):
        first = await emitter.emit(restaurant.id, NotificationType.SUBSCRIPTION_EXPIRY, "Plan Expiring Soon", "2 days")
        clock.advance(hours=1)
        second = await emitter.emit(restaurant.id, NotificationType.SUBSCRIPTION_EXPIRY, "Plan Expiring Soon", "2 days")

        assert first is not None
        assert second is None
        assert len(await emitter.list_notifications(restaurant.id)) == 1

    async def test_same_type_after_window_is_sent(self, emitter, restaurant, clock):
        await emitter.emit(restaurant.id, NotificationType.PLAN_EXPIRED, "Plan Expired", "...")
        clock.advance(hours=25)
        assert await emitter.emit(restaurant.id, NotificationType.PLAN_EXPIRED, "Plan Expired", "...")

    async def test_different_types_are_independent(self, emitter, restaurant):
        await emitter.emit(restaurant.id, NotificationType.SUBSCRIPTION_EXPIRY, "a", "a")
        assert await emitter.emit(restaurant.id, NotificationType.PLAN_EXPIRED, "b", "b")

    async def test_zero_window_disables_dedupe(self, store, restaurant, clock):
        emitter = NotificationEmitter(store, dedupe_hours=0, clock=clock)

        first = await emitter.emit(restaurant.id, NotificationType.PLAN_EXPIRED, "Plan Expired", "...")
        second = await emitter.emit(restaurant.id, NotificationType.PLAN_EXPIRED, "Plan Expired", "...")

        assert first and second and first != second
        assert len(await emitter.list_notifications(restaurant.id)) == 2

    async def test_dedupe_is_per_restaurant(self, platform, emitter, restaurant):
        other = await platform.onboard_restaurant(RestaurantCreate(name="Other", admin_email="o@x.in"))
        await emitter.emit(restaurant.id, NotificationType.PLAN_EXPIRED, "a", "a")
        assert await emitter.emit(other.id, NotificationType.PLAN_EXPIRED, "a", "a")


class TestSubscriptionCheck:

    async def test_expired_plan(self, emitter, store, restaurant, clock):
        await set_purchase(store, restaurant.id, clock.now - timedelta(days=31))

        notification_id = await emitter.check_subscription(restaurant.id)

        [notification] = await emitter.list_notifications(restaurant.id)
        assert notification.id == notification_id
        assert notification.type == NotificationType.PLAN_EXPIRED
        assert notification.priority == NotificationPriority.URGENT
        assert notification.title == "Plan Expired"
        assert notification.action_url == f"/RESTAURANT/{restaurant.id}/admin/upgrade"

    @pytest.mark.parametrize("days_ago,priority,text", [
        (29, NotificationPriority.URGENT, "1 day."),
        (28, NotificationPriority.HIGH, "2 days."),
    ])
    async def test_expiring_plan(self, emitter, store, restaurant, clock, days_ago, priority, text):
        await set_purchase(store, restaurant.id, clock.now - timedelta(days=days_ago))

        await emitter.check_subscription(restaurant.id)

        [notification] = await emitter.list_notifications(restaurant.id)
        assert notification.type == NotificationType.SUBSCRIPTION_EXPIRY
        assert notification.priority == priority
        assert text in notification.message

    async def test_repeated_checks_create_one_reminder(self, emitter, store, restaurant, clock):
        await set_purchase(store, restaurant.id, clock.now - timedelta(days=29))

        await emitter.check_subscription(restaurant.id)
        clock.advance(minutes=30)
        await emitter.check_subscription(restaurant.id)

        assert len(await emitter.list_notifications(restaurant.id)) == 1

    async def test_simultaneous_checks_create_one_reminder(self, any_platform, any_store, any_restaurant, clock):
        await set_purchase(any_store, any_restaurant.id, clock.now - timedelta(days=29))
        emitter = any_platform.notifications

        sent = await asyncio.gather(*(emitter.check_subscription(any_restaurant.id) for _ in range(3)))

        assert len([notification_id for notification_id in sent if notification_id]) == 1
        assert len(await emitter.list_notifications(any_restaurant.id)) == 1

    async def test_active_and_missing_plans_are_quiet(self, emitter, store, restaurant, clock):
        assert await emitter.check_subscription(restaurant.id) is None
        await set_purchase(store, restaurant.id, clock.now - timedelta(days=3))
        assert await emitter.check_subscription(restaurant.id) is None
        assert await emitter.list_notifications(restaurant.id) == []

    async def test_sweep_skips_inactive_restaurants(self, platform, emitter, store, restaurant, clock):
        other = await platform.onboard_restaurant(RestaurantCreate(name="Closed", admin_email="c@x.in"))
        await store.put_global("restaurants", {"is_active": False}, doc_id=other.id)
        for restaurant_id in (restaurant.id, other.id):
            await set_purchase(store, restaurant_id, clock.now - timedelta(days=40))

        counts = await emitter.check_all_subscriptions()

        assert counts == {"checked": 1, "created": 1, "failed": 0}
        assert await emitter.list_notifications(other.id) == []


class TestBroadcast:

    async def test_broadcast_is_never_deduplicated(self, emitter, restaurant):
        await emitter.broadcast(restaurant.id, "Maintenance", "Tonight 2am")
        await emitter.broadcast(restaurant.id, "Maintenance", "Tonight 2am")

        notifications = await emitter.list_notifications(restaurant.id)
        assert len(notifications) == 2
        assert all(n.type == NotificationType.ADMIN_MESSAGE for n in notifications)
        assert all(n.sender == BROADCAST_SENDER for n in notifications)

    async def test_broadcast_all_counts(self, platform, emitter, restaurant):
        await platform.onboard_restaurant(RestaurantCreate(name="Second", admin_email="s@x.in"))

        response = await emitter.broadcast_all("New feature", "Table QR codes are live")

        assert (response.success, response.failed) == (2, 0)


class TestInbox:

    async def test_newest_first_and_unread_filter(self, emitter, restaurant, clock):
        older = await emitter.broadcast(restaurant.id, "First", "1")
        clock.advance(minutes=5)
        newer = await emitter.broadcast(restaurant.id, "Second", "2")

        assert [n.id for n in await emitter.list_notifications(restaurant.id)] == [newer, older]

        read = await emitter.mark_as_read(restaurant.id, older)
        assert read.read
        assert [n.id for n in await emitter.list_notifications(restaurant.id, unread_only=True)] == [newer]

    async def test_mark_unknown_notification(self, emitter, restaurant):
        with pytest.raises(NotFound):
            await emitter.mark_as_read(restaurant.id, "ntf_missing")

    async def test_delete(self, emitter, restaurant):
        notification_id = await emitter.broadcast(restaurant.id, "Hi", "there")
        await emitter.delete_notification(restaurant.id, notification_id)
        assert await emitter.list_notifications(restaurant.id) == []
