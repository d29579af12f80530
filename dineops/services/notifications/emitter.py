"""
Notification Emitter

Writes in-app notifications into a restaurant's ``notifications``
collection. Subscription reminders are deduplicated per (restaurant, type)
inside a rolling window so a periodic check can run as often as it likes;
operator broadcasts are always delivered.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from dineops.core import utc_now
from dineops.core.config import get_settings
from dineops.core.exceptions import DineOpsError, WriteConflict
from dineops.schemas import (
    BroadcastResponse,
    Notification,
    NotificationPriority,
    NotificationType,
    Restaurant,
    SubscriptionState,
)
from dineops.services.store.base import BaseTenantStore
from dineops.services.subscriptions.ledger import SubscriptionLedger

logger = logging.getLogger(__name__)

BROADCAST_SENDER = "Super Admin"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class NotificationEmitter:
    """
    Example:
        >>> emitter = NotificationEmitter(store)
        >>> await emitter.check_subscription("rst_1")
        'ntf_...'
    """

    def __init__(
        self,
        store: BaseTenantStore,
        ledger: Optional[SubscriptionLedger] = None,
        clock: Callable[[], datetime] = utc_now,
        dedupe_hours: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store
        self.ledger = ledger or SubscriptionLedger.from_settings()
        self.clock = clock
        if dedupe_hours is None:
            dedupe_hours = settings.notification_dedupe_hours
        self.dedupe_window = timedelta(hours=dedupe_hours)
        self.upgrade_path_template = settings.login_path_template + "/upgrade"

    async def emit(
        self,
        tenant_id: str,
        type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        days_remaining: Optional[int] = None,
        action_url: Optional[str] = None,
        sender: Optional[str] = None,
        dedupe: bool = True,
    ) -> Optional[str]:
        """
        Create a notification.

        Returns:
            The new notification id, or None if an identical type was
            already sent inside the dedupe window
        """
        type = NotificationType(type)
        now = self.clock()
        dedupe = dedupe and self.dedupe_window > timedelta(0)

        if dedupe and await self._sent_recently(tenant_id, type, now):
            logger.debug(f"Skipping {type.value} for {tenant_id}: already sent within window")
            return None

        notification = Notification(
            restaurant_id=tenant_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            read=False,
            days_remaining=days_remaining,
            action_url=action_url,
            sender=sender,
            created_at=now,
        )
        if not dedupe:
            notification_id = await self.store.put(tenant_id, "notifications", notification)
        else:
            # Concurrent checks inside one window all derive the same id;
            # only the first create lands
            try:
                notification_id = await self.store.create(
                    tenant_id, "notifications", notification, doc_id=self._window_id(type, now),
                )
            except WriteConflict:
                logger.debug(f"Skipping {type.value} for {tenant_id}: created concurrently")
                return None

        logger.info(f"Notification {type.value} created for {tenant_id} ({notification_id})")
        return notification_id

    async def check_subscription(self, tenant_id: str) -> Optional[str]:
        """Raise an expiry reminder if the plan is expired or about to expire."""
        restaurant = Restaurant.model_validate(await self.store.get_global("restaurants", tenant_id))
        status = self.ledger.status(restaurant, self.clock())
        action_url = self.upgrade_path_template.format(tenant_id=tenant_id)
        plan_name = restaurant.plan.name if restaurant.plan else ""

        if status.state == SubscriptionState.EXPIRED:
            return await self.emit(
                tenant_id,
                NotificationType.PLAN_EXPIRED,
                title="Plan Expired",
                message=(
                    f"Your {plan_name} plan has expired. Please upgrade immediately "
                    f"to continue using all features."
                ),
                priority=NotificationPriority.URGENT,
                days_remaining=0,
                action_url=action_url,
            )

        if status.state == SubscriptionState.EXPIRING:
            days = status.days_remaining
            return await self.emit(
                tenant_id,
                NotificationType.SUBSCRIPTION_EXPIRY,
                title="Plan Expiring Soon",
                message=(
                    f"Your {plan_name} plan expires in {days} day{'s' if days > 1 else ''}. "
                    f"Upgrade now to avoid service interruption."
                ),
                priority=NotificationPriority.URGENT if days <= 1 else NotificationPriority.HIGH,
                days_remaining=days,
                action_url=action_url,
            )

        return None

    async def check_all_subscriptions(self) -> dict[str, int]:
        """Run check_subscription for every active restaurant."""
        counts = {"checked": 0, "created": 0, "failed": 0}
        for document in await self.store.get_global("restaurants"):
            restaurant = Restaurant.model_validate(document)
            if not restaurant.is_active:
                continue
            counts["checked"] += 1
            try:
                if await self.check_subscription(restaurant.id):
                    counts["created"] += 1
            except DineOpsError as e:
                counts["failed"] += 1
                logger.error(f"Subscription check failed for {restaurant.id}: {e}")

        logger.info(
            f"Subscription check: {counts['checked']} checked, "
            f"{counts['created']} notified, {counts['failed']} failed"
        )
        return counts

    async def broadcast(self, tenant_id: str, title: str, message: str) -> str:
        return await self.emit(
            tenant_id,
            NotificationType.ADMIN_MESSAGE,
            title=title,
            message=message,
            priority=NotificationPriority.NORMAL,
            sender=BROADCAST_SENDER,
            dedupe=False,
        )

    async def broadcast_all(self, title: str, message: str) -> BroadcastResponse:
        success = failed = 0
        for document in await self.store.get_global("restaurants"):
            restaurant = Restaurant.model_validate(document)
            if not restaurant.is_active:
                continue
            try:
                await self.broadcast(restaurant.id, title, message)
                success += 1
            except DineOpsError as e:
                failed += 1
                logger.error(f"Broadcast to {restaurant.id} failed: {e}")
        return BroadcastResponse(success=success, failed=failed)

    async def list_notifications(self, tenant_id: str, unread_only: bool = False) -> list[Notification]:
        notifications = [
            Notification.model_validate(doc)
            for doc in await self.store.get(tenant_id, "notifications")
        ]
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        notifications.sort(key=lambda n: _aware(n.created_at) if n.created_at else epoch, reverse=True)
        return notifications

    async def mark_as_read(self, tenant_id: str, notification_id: str) -> Notification:
        # get() raises NotFound for an unknown id
        await self.store.get(tenant_id, "notifications", notification_id)
        await self.store.put(tenant_id, "notifications", {"read": True}, doc_id=notification_id)
        return Notification.model_validate(
            await self.store.get(tenant_id, "notifications", notification_id)
        )

    async def delete_notification(self, tenant_id: str, notification_id: str) -> None:
        await self.store.remove(tenant_id, "notifications", notification_id)

    async def _sent_recently(self, tenant_id: str, type: NotificationType, now: datetime) -> bool:
        cutoff = _aware(now) - self.dedupe_window
        for document in await self.store.find(tenant_id, "notifications", type=type.value):
            created_at = Notification.model_validate(document).created_at
            if created_at is not None and _aware(created_at) > cutoff:
                return True
        return False

    def _window_id(self, type: NotificationType, now: datetime) -> str:
        bucket = int(_aware(now).timestamp() // self.dedupe_window.total_seconds())
        return f"ntf_{type.value}_{bucket}"
