"""
Subscription Ledger

Derives a restaurant's entitlement from ``plan.purchased_at`` and a fixed
period. Reads never touch the Restaurant record and never fail: a missing
plan simply yields state "none".

    days_remaining = max(0, period - floor((now - purchased_at) / 1 day))

    0            → expired
    1..threshold → expiring
    otherwise    → active

An upgrade always restarts the period at the upgrade instant; remaining
days of the previous plan are not carried over.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from dineops.core.config import get_settings
from dineops.schemas import Plan, Restaurant, SubscriptionState, SubscriptionStatus
from dineops.services.subscriptions.plans import PlanOffer

ONE_DAY = timedelta(days=1)


def _aware(value: datetime) -> datetime:
    # Documents written without tzinfo are UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SubscriptionLedger:
    period_days: int = 30
    expiring_threshold_days: int = 2

    @classmethod
    def from_settings(cls) -> "SubscriptionLedger":
        settings = get_settings()
        return cls(
            period_days=settings.subscription_period_days,
            expiring_threshold_days=settings.expiring_threshold_days,
        )

    def days_remaining(self, purchased_at: datetime, now: datetime) -> int:
        days_elapsed = (_aware(now) - _aware(purchased_at)) // ONE_DAY
        # A purchase stamped in the future (clock skew) still grants one period
        return max(0, min(self.period_days, self.period_days - days_elapsed))

    def status(self, restaurant: Restaurant, now: datetime) -> SubscriptionStatus:
        plan: Optional[Plan] = restaurant.plan
        if plan is None or plan.purchased_at is None:
            return SubscriptionStatus(state=SubscriptionState.NONE, days_remaining=0)

        remaining = self.days_remaining(plan.purchased_at, now)
        if remaining == 0:
            state = SubscriptionState.EXPIRED
        elif remaining <= self.expiring_threshold_days:
            state = SubscriptionState.EXPIRING
        else:
            state = SubscriptionState.ACTIVE

        return SubscriptionStatus(
            state=state,
            days_remaining=remaining,
            expiry_date=_aware(plan.purchased_at) + timedelta(days=self.period_days),
        )

    def upgrade(self, restaurant: Restaurant, offer: PlanOffer, now: datetime) -> Restaurant:
        """Return a copy of the restaurant holding a fresh plan bought at ``now``."""
        plan = Plan(
            id=offer.id,
            name=offer.name,
            price=offer.price,
            duration=offer.duration,
            purchased_at=_aware(now),
        )
        return restaurant.model_copy(update={"plan": plan, "updated_at": now})
