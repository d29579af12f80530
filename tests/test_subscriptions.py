"""
Subscription ledger: state derivation and plan upgrades.
"""

from datetime import datetime, timedelta

import pytest

from dineops.core.exceptions import NotFound
from dineops.schemas import Plan, Restaurant, SubscriptionState
from dineops.services.subscriptions import PLAN_CATALOG, SubscriptionLedger, get_plan_offer
from tests.conftest import NOW

ledger = SubscriptionLedger(period_days=30, expiring_threshold_days=2)


def restaurant_bought(days_ago: float) -> Restaurant:
    return Restaurant(
        id="rst_1",
        name="Spice Route",
        plan=Plan(id="basic", name="Basic", price=999, purchased_at=NOW - timedelta(days=days_ago)),
    )


class TestStatus:

    def test_expiring_one_day_left(self):
        status = ledger.status(restaurant_bought(29), NOW)
        assert status.state == SubscriptionState.EXPIRING
        assert status.days_remaining == 1

    def test_expired(self):
        status = ledger.status(restaurant_bought(31), NOW)
        assert status.state == SubscriptionState.EXPIRED
        assert status.days_remaining == 0

    def test_no_plan(self):
        status = ledger.status(Restaurant(id="rst_1", name="Spice Route"), NOW)
        assert status.state == SubscriptionState.NONE
        assert status.days_remaining == 0

    @pytest.mark.parametrize("days_ago,state,remaining", [
        (0, SubscriptionState.ACTIVE, 30),
        (27.5, SubscriptionState.ACTIVE, 3),
        (28, SubscriptionState.EXPIRING, 2),
        (30, SubscriptionState.EXPIRED, 0),
        (400, SubscriptionState.EXPIRED, 0),
    ])
    def test_boundaries(self, days_ago, state, remaining):
        status = ledger.status(restaurant_bought(days_ago), NOW)
        assert (status.state, status.days_remaining) == (state, remaining)

    def test_days_remaining_never_increases(self):
        purchased_at = NOW - timedelta(days=10)
        samples = [ledger.days_remaining(purchased_at, NOW + timedelta(hours=h)) for h in range(0, 24 * 40, 7)]
        assert all(a >= b for a, b in zip(samples, samples[1:]))
        assert all(0 <= d <= 30 for d in samples)

    def test_purchase_in_the_future_is_clamped(self):
        status = ledger.status(restaurant_bought(-3), NOW)
        assert status.days_remaining == 30

    def test_naive_timestamps_are_utc(self):
        naive = Restaurant(
            id="rst_1",
            name="Spice Route",
            plan=Plan(id="pro", name="Professional", price=1999,
                      purchased_at=datetime(2026, 2, 1, 12, 0, 0)),
        )
        assert ledger.status(naive, NOW).days_remaining == 2

    def test_expiry_date(self):
        status = ledger.status(restaurant_bought(5), NOW)
        assert status.expiry_date == NOW + timedelta(days=25)

    def test_status_does_not_modify_restaurant(self):
        restaurant = restaurant_bought(31)
        before = restaurant.model_dump()
        ledger.status(restaurant, NOW)
        assert restaurant.model_dump() == before


class TestUpgrade:

    def test_upgrade_restarts_period(self):
        upgraded = ledger.upgrade(restaurant_bought(31), get_plan_offer("pro"), NOW)

        assert upgraded.plan.id == "pro"
        assert upgraded.plan.name == "Professional"
        assert upgraded.plan.price == 1999
        assert upgraded.plan.purchased_at == NOW
        status = ledger.status(upgraded, NOW)
        assert (status.state, status.days_remaining) == (SubscriptionState.ACTIVE, 30)

    def test_upgrade_is_idempotent_at_one_instant(self):
        offer = get_plan_offer("enterprise")
        once = ledger.upgrade(restaurant_bought(3), offer, NOW)
        twice = ledger.upgrade(once, offer, NOW)
        assert once.plan == twice.plan

    def test_catalog(self):
        assert {k: v.price for k, v in PLAN_CATALOG.items()} == {"basic": 999, "pro": 1999, "enterprise": 3999}
        assert all(offer.duration == "30 days" for offer in PLAN_CATALOG.values())

    def test_unknown_plan(self):
        with pytest.raises(NotFound):
            get_plan_offer("platinum")
