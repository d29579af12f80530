"""
Shared fixtures: in-memory backends, a controllable clock and a seeded
restaurant with one table and a small menu; any_store and the any_*
fixtures built on it run a test once per store backend.
"""

import os

os.environ.setdefault("ENV_MODE", "development")

from datetime import datetime, timedelta, timezone

import pytest

from dineops.database import build_engine, build_session_maker, init_db
from dineops.schemas import FoodCreate, RestaurantCreate, TableCreate
from dineops.services.cart.memory import MemoryCartRepository
from dineops.services.entitlements import AdminSessionHandle
from dineops.services.ids import SequentialIdGenerator
from dineops.services.receipts.mock import MockReceiptRenderer
from dineops.services.restaurants import RestaurantPlatform
from dineops.services.store.memory import MemoryTenantStore
from dineops.services.store.sql import SqlTenantStore

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSession(AdminSessionHandle):
    def __init__(self):
        self.calls = []

    async def invalidate_credentials(self) -> None:
        self.calls.append("invalidate")

    async def terminate(self) -> None:
        self.calls.append("terminate")

    async def redirect(self, location: str) -> None:
        self.calls.append(("redirect", location))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return MemoryTenantStore(id_generator=SequentialIdGenerator())


@pytest.fixture
def carts():
    return MemoryCartRepository()


@pytest.fixture
def renderer():
    return MockReceiptRenderer()


@pytest.fixture
def session():
    return RecordingSession()


@pytest.fixture
def platform(store, carts, renderer, clock):
    return RestaurantPlatform(store, carts, renderer, clock=clock)


async def seed_restaurant(platform):
    restaurant = await platform.onboard_restaurant(RestaurantCreate(
        name="Spice Route",
        admin_email="owner@spiceroute.in",
    ))
    await platform.create_table(restaurant.id, TableCreate(number=4))
    await platform.create_food(restaurant.id, FoodCreate(
        name="Biryani", price=250, category="Main Course", images=["https://cdn.test/biryani.jpg"],
    ))
    await platform.create_food(restaurant.id, FoodCreate(
        name="Butter Naan", price=40, category="Breads",
    ))
    return restaurant


@pytest.fixture
async def restaurant(platform):
    """Onboarded restaurant with table 4, Biryani (250) and Butter Naan (40)."""
    return await seed_restaurant(platform)


@pytest.fixture
async def menu(platform, restaurant):
    foods = await platform.list_foods(restaurant.id)
    return {food.name: food for food in foods}


# Concurrency properties are checked against both backends: the memory
# store and the SQL store on a throwaway SQLite database.

@pytest.fixture(params=["memory", "sql"])
async def any_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryTenantStore(id_generator=SequentialIdGenerator())
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_db(engine)
    yield SqlTenantStore(build_session_maker(engine), id_generator=SequentialIdGenerator())
    await engine.dispose()


@pytest.fixture
def any_platform(any_store, carts, renderer, clock):
    return RestaurantPlatform(any_store, carts, renderer, clock=clock)


@pytest.fixture
async def any_restaurant(any_platform):
    return await seed_restaurant(any_platform)
