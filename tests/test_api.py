"""
HTTP surface, exercised with FastAPI's TestClient against in-memory
backends.
"""

import pytest
from fastapi.testclient import TestClient

from dineops.core.config import get_settings
from dineops.main import app
from dineops.services.restaurants import get_platform


@pytest.fixture
def client(platform):
    app.dependency_overrides[get_platform] = lambda: platform
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant(client):
    response = client.post("/platform/restaurants", json={
        "name": "Spice Route",
        "admin_email": "owner@spiceroute.in",
    })
    assert response.status_code == 201
    tenant_id = response.json()["id"]

    admin = f"/restaurants/{tenant_id}/admin"
    assert client.post(f"{admin}/tables", json={"number": 4}).status_code == 201
    food = client.post(f"{admin}/foods", json={"name": "Biryani", "price": 250, "category": "Main Course"})
    assert food.status_code == 201
    return {"id": tenant_id, "food_id": food.json()["id"], "admin": admin}


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "operational"
        assert response.json()["store"] == "memory: healthy"

    def test_plans(self, client):
        plans = client.get("/plans").json()
        assert [p["id"] for p in plans] == ["basic", "pro", "enterprise"]


class TestCheckoutFlow:

    def test_basket_to_orders(self, client, tenant):
        base = f"/restaurants/{tenant['id']}/tables/4"

        cart = client.post(f"{base}/cart", json={"food_id": tenant["food_id"], "quantity": 2})
        assert cart.status_code == 200
        assert cart.json()["total"] == 500

        response = client.post(f"{base}/checkout", json={
            "customer": {"name": "Ravi", "phone": "9998887771"},
            "commit_id": "chk-1",
        })
        assert response.status_code == 201
        assert response.json()["total"] == 500
        assert client.get(f"{base}/cart").json()["lines"] == []

        orders = client.get(f"{tenant['admin']}/orders").json()
        assert orders["total"] == 1
        assert orders["orders"][0]["status"] == "pending"

    def test_missing_phone_is_400(self, client, tenant):
        base = f"/restaurants/{tenant['id']}/tables/4"
        client.post(f"{base}/cart", json={"food_id": tenant["food_id"]})

        response = client.post(f"{base}/checkout", json={"customer": {"name": "Ravi", "phone": ""}})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert len(client.get(f"{base}/cart").json()["lines"]) == 1

    def test_unknown_table_is_404(self, client, tenant):
        response = client.post(f"/restaurants/{tenant['id']}/tables/99/buy-now", json={
            "food_id": tenant["food_id"],
            "customer": {"name": "Ravi", "phone": "9998887771"},
        })
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_basket_at_unknown_table_is_404(self, client, tenant):
        base = f"/restaurants/{tenant['id']}/tables/99"

        response = client.post(f"{base}/cart", json={"food_id": tenant["food_id"], "quantity": 1})

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
        assert client.get(f"{base}/cart").status_code == 404

    def test_invalid_status_change_is_409(self, client, tenant):
        result = client.post(f"/restaurants/{tenant['id']}/tables/4/buy-now", json={
            "food_id": tenant["food_id"],
            "customer": {"name": "Ravi", "phone": "9998887771"},
        }).json()

        response = client.patch(
            f"{tenant['admin']}/orders/{result['order_ids'][0]}/status",
            json={"status": "preparing"},
        )
        assert response.status_code == 409


class TestAccess:

    def test_blocked_restaurant_admin_is_403(self, client, tenant):
        response = client.post(f"/platform/restaurants/{tenant['id']}/block", json={"reason": "non-payment"})
        assert response.status_code == 200
        assert response.json()["blocked_reason"] == "non-payment"

        response = client.get(f"{tenant['admin']}/orders")
        assert response.status_code == 403
        assert response.json()["error"] == "entitlement_blocked"

        # Customers can still browse the menu
        assert client.get(f"/restaurants/{tenant['id']}/foods").status_code == 200

        client.post(f"/platform/restaurants/{tenant['id']}/unblock")
        assert client.get(f"{tenant['admin']}/orders").status_code == 200

    def test_unknown_restaurant_admin_is_404(self, client):
        assert client.get("/restaurants/rst_missing/admin/orders").status_code == 404

    def test_operator_token_required_when_configured(self, client, monkeypatch):
        monkeypatch.setenv("PLATFORM_OPERATOR_TOKEN", "s3cret")
        get_settings.cache_clear()
        try:
            assert client.get("/platform/restaurants").status_code == 401
            response = client.get("/platform/restaurants", headers={"X-Platform-Token": "s3cret"})
            assert response.status_code == 200
        finally:
            monkeypatch.delenv("PLATFORM_OPERATOR_TOKEN")
            get_settings.cache_clear()


class TestOperatorConsole:

    def test_broadcast_and_subscription(self, client, tenant):
        response = client.post("/platform/notifications/broadcast", json={"title": "Hello", "message": "Welcome"})
        assert response.json() == {"success": 1, "failed": 0}

        upgraded = client.post(f"{tenant['admin']}/subscription/upgrade", json={"plan_id": "pro"})
        assert upgraded.json()["plan"]["name"] == "Professional"

        status = client.get(f"{tenant['admin']}/subscription").json()
        assert (status["state"], status["days_remaining"]) == ("active", 30)

        inbox = client.get(f"{tenant['admin']}/notifications").json()
        assert [n["sender"] for n in inbox] == ["Super Admin"]

    def test_blank_broadcast_rejected(self, client):
        response = client.post("/platform/notifications/broadcast", json={"title": "  ", "message": "x"})
        assert response.status_code == 422
