"""
Entitlement gate: ending admin sessions when a restaurant is blocked.
"""

import asyncio

import pytest

from dineops.core.exceptions import EntitlementBlocked
from dineops.schemas import RestaurantCreate
from dineops.services.entitlements import EntitlementGate, ensure_not_blocked


class BrokenReadStore:
    """Stands in for a store whose reads fail."""

    async def get_global(self, collection, doc_id=None):
        raise ConnectionError("store unreachable")


class StubDirectoryStore:
    """Serves whatever restaurant document the test sets."""

    def __init__(self, document):
        self.document = document

    async def get_global(self, collection, doc_id=None):
        return dict(self.document)


@pytest.fixture
def gate(store, restaurant, session):
    return EntitlementGate(store, restaurant.id, session)


class TestPolling:

    async def test_block_ends_session_once(self, platform, restaurant, gate, session):
        await platform.block_restaurant(restaurant.id, "non-payment")

        assert await gate.check() is True
        assert await gate.check() is False

        assert gate.terminated
        assert gate.termination_count == 1
        assert session.calls == [
            "invalidate",
            "terminate",
            ("redirect", f"/RESTAURANT/{restaurant.id}/admin"),
        ]
        stored = await platform.get_restaurant(restaurant.id)
        assert stored.is_blocked
        assert stored.blocked_reason == "non-payment"

    async def test_active_restaurant_keeps_session(self, gate, session):
        assert await gate.check() is False
        assert session.calls == []
        assert not gate.status_unknown

    async def test_unblock_rearms(self, platform, restaurant, gate, clock):
        await platform.block_restaurant(restaurant.id)
        await gate.check()
        await platform.unblock_restaurant(restaurant.id)
        await gate.check()

        clock.advance(hours=1)
        await platform.block_restaurant(restaurant.id, "chargeback")
        await gate.check()

        assert gate.termination_count == 2
        assert gate.blocked_reason == "chargeback"

    async def test_read_error_marks_status_unknown(self, restaurant, session):
        gate = EntitlementGate(BrokenReadStore(), restaurant.id, session)

        assert await gate.check() is False

        assert gate.status_unknown
        assert not gate.terminated
        assert session.calls == []

    async def test_malformed_document_keeps_watch_running(self, session):
        store = StubDirectoryStore({"id": "rst_1", "name": "Spice Route", "is_blocked": "sometimes"})
        gate = EntitlementGate(store, "rst_1", session)

        assert await gate.check() is False
        assert gate.status_unknown

        watcher = asyncio.create_task(gate.watch(interval=0.01))
        await asyncio.sleep(0.05)
        assert not watcher.done()

        store.document = {"id": "rst_1", "name": "Spice Route", "is_blocked": True, "blocked_reason": "non-payment"}
        await asyncio.wait_for(watcher, timeout=1.0)

        assert gate.terminated
        assert not gate.status_unknown
        assert session.calls[0] == "invalidate"

    async def test_watch_stops_after_ending_session(self, platform, restaurant, gate, session):
        await platform.block_restaurant(restaurant.id)
        await asyncio.wait_for(gate.watch(interval=0.01), timeout=1.0)
        assert gate.termination_count == 1

    async def test_custom_login_path(self, platform, store, restaurant, session):
        gate = EntitlementGate(store, restaurant.id, session, login_path="/login")
        await platform.block_restaurant(restaurant.id)
        await gate.check()
        assert session.calls[-1] == ("redirect", "/login")


class TestPush:

    async def test_subscription_ends_session_on_block(self, platform, store, restaurant, session):
        async with EntitlementGate(store, restaurant.id, session) as gate:
            assert gate.watching
            await platform.block_restaurant(restaurant.id, "non-payment")
            assert gate.terminated

            # The next polling tick sees the same block state
            await gate.check()
            assert gate.termination_count == 1

        assert not gate.watching
        assert store.feed.subscriber_count == 0

    async def test_other_restaurant_blocked(self, platform, store, restaurant, session):
        other = await platform.onboard_restaurant(RestaurantCreate(name="Other", admin_email="o@x.in"))

        async with EntitlementGate(store, restaurant.id, session) as gate:
            await platform.block_restaurant(other.id)
            assert not gate.terminated

    async def test_removed_restaurant_marks_status_unknown(self, store, restaurant, session):
        async with EntitlementGate(store, restaurant.id, session) as gate:
            await store.remove_global("restaurants", restaurant.id)
            assert gate.status_unknown
            assert not gate.terminated


class TestEnsureNotBlocked:

    async def test_blocked_restaurant_rejected(self, platform, restaurant):
        blocked = await platform.block_restaurant(restaurant.id, "fraud")
        with pytest.raises(EntitlementBlocked) as exc_info:
            ensure_not_blocked(blocked)
        assert exc_info.value.status_code == 403
        assert "fraud" in exc_info.value.message

    async def test_active_restaurant_passes(self, restaurant):
        assert ensure_not_blocked(restaurant) is restaurant
