"""
Rush-Hour Simulation Script

Onboards a restaurant against a running API (development mode), seeds its
menu and tables, then fires concurrent checkouts from many tables to check
that every order lands exactly once.
Run from project root: python scripts/simulate.py

Flow:
    1. onboard restaurant, upgrade plan, add tables and foods
    2. concurrent basket + checkout per table, plus "buy now" orders
    3. replay a few commit_ids to confirm retries do not duplicate orders
    4. block the restaurant and confirm the admin panel is closed
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8000"
TOTAL_TABLES = 20

FIRST_NAMES = ["Aarav", "Diya", "Kabir", "Meera", "Rohan", "Isha", "Vikram", "Anaya", "Arjun", "Sara"]
MENU_ITEMS = [
    {"name": "Chicken Biryani", "price": 250, "category": "Main Course"},
    {"name": "Paneer Tikka", "price": 180, "category": "Starters"},
    {"name": "Butter Naan", "price": 40, "category": "Breads"},
    {"name": "Dal Makhani", "price": 160, "category": "Main Course"},
    {"name": "Gulab Jamun", "price": 90, "category": "Desserts"},
    {"name": "Masala Chai", "price": 30, "category": "Beverages"},
]


def generate_random_customer() -> dict[str, str]:
    return {
        "name": random.choice(FIRST_NAMES),
        "phone": f"9{random.randint(100000000, 999999999)}",
    }


# =============================================================================
# SETUP
# =============================================================================

async def seed_restaurant(client: httpx.AsyncClient, num_tables: int) -> tuple[str, list[dict]]:
    response = await client.post(f"{API_BASE_URL}/platform/restaurants", json={
        "name": "Simulation Kitchen",
        "admin_email": f"owner+{uuid.uuid4().hex[:6]}@simulation.test",
    })
    response.raise_for_status()
    tenant_id = response.json()["id"]
    print(f"   ✅ Restaurant {tenant_id} onboarded")

    admin = f"{API_BASE_URL}/restaurants/{tenant_id}/admin"
    (await client.post(f"{admin}/subscription/upgrade", json={"plan_id": "pro"})).raise_for_status()

    for number in range(1, num_tables + 1):
        (await client.post(f"{admin}/tables", json={"number": number})).raise_for_status()

    foods = []
    for item in MENU_ITEMS:
        response = await client.post(f"{admin}/foods", json=item)
        response.raise_for_status()
        foods.append(response.json())
    print(f"   ✅ {num_tables} tables and {len(foods)} menu items created")
    return tenant_id, foods


# =============================================================================
# ORDER FLOWS
# =============================================================================

async def send_cart_checkout(
    client: httpx.AsyncClient,
    tenant_id: str,
    foods: list[dict],
    table_no: int,
) -> dict[str, Any]:
    base = f"{API_BASE_URL}/restaurants/{tenant_id}/tables/{table_no}"
    commit_id = uuid.uuid4().hex
    start_time = time.time()

    try:
        for food in random.sample(foods, random.randint(1, 3)):
            response = await client.post(f"{base}/cart", json={
                "food_id": food["id"],
                "quantity": random.randint(1, 3),
            })
            response.raise_for_status()

        response = await client.post(f"{base}/checkout", json={
            "customer": generate_random_customer(),
            "commit_id": commit_id,
        }, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "table": table_no,
                "success": True,
                "commit_id": commit_id,
                "orders": len(data["order_ids"]),
                "total": data["total"],
                "time": elapsed,
                "mode": "cart",
            }
        return {"table": table_no, "success": False, "error": response.text[:100], "time": elapsed, "mode": "cart"}
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {"table": table_no, "success": False, "error": str(e)[:100], "time": elapsed, "mode": "cart"}


async def send_buy_now(
    client: httpx.AsyncClient,
    tenant_id: str,
    foods: list[dict],
    table_no: int,
) -> dict[str, Any]:
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/restaurants/{tenant_id}/tables/{table_no}/buy-now",
            json={
                "food_id": random.choice(foods)["id"],
                "quantity": 1,
                "customer": generate_random_customer(),
                "commit_id": uuid.uuid4().hex,
            },
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)
        if response.status_code == 201:
            data = response.json()
            return {"table": table_no, "success": True, "orders": 1, "total": data["total"], "time": elapsed, "mode": "buy_now"}
        return {"table": table_no, "success": False, "error": response.text[:100], "time": elapsed, "mode": "buy_now"}
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {"table": table_no, "success": False, "error": str(e)[:100], "time": elapsed, "mode": "buy_now"}


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_tables: int = TOTAL_TABLES) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 RUSH-HOUR SIMULATION")
    print("=" * 70)
    print(f"📋 Tables: {num_tables}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        response = await client.get(f"{API_BASE_URL}/health")
        response.raise_for_status()
        print(f"\n🩺 Health: {response.json().get('status')}")

        tenant_id, foods = await seed_restaurant(client, num_tables)
        admin = f"{API_BASE_URL}/restaurants/{tenant_id}/admin"

        print("\n🚀 Firing concurrent checkouts...\n")
        start_time = time.time()
        tasks = []
        for table_no in range(1, num_tables + 1):
            tasks.append(send_cart_checkout(client, tenant_id, foods, table_no))
            if table_no % 4 == 0:
                tasks.append(send_buy_now(client, tenant_id, foods, table_no))
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        # Retrying a committed checkout must not create new orders
        replays = 0
        for result in [r for r in successful if r.get("commit_id")][:3]:
            response = await client.post(
                f"{API_BASE_URL}/restaurants/{tenant_id}/tables/{result['table']}/checkout",
                json={"customer": generate_random_customer(), "commit_id": result["commit_id"]},
            )
            if response.status_code == 201 and response.json().get("replayed"):
                replays += 1

        response = await client.get(f"{admin}/orders")
        response.raise_for_status()
        stored_orders = response.json()["total"]
        expected_orders = sum(r["orders"] for r in successful)

        response = await client.post(
            f"{API_BASE_URL}/platform/restaurants/{tenant_id}/block",
            json={"reason": "Simulation finished"},
        )
        response.raise_for_status()
        blocked_status = (await client.get(f"{admin}/orders")).status_code

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful commits: {len(successful)}/{len(results)}")
    print(f"❌ Failed commits: {len(failed)}/{len(results)}")
    print(f"⏱️  Total Time: {total_time}s")
    print(f"🔁 Replayed commit_ids returning the original result: {replays}")
    print(f"🧾 Orders stored: {stored_orders} (expected {expected_orders})")
    print(f"🚫 Admin panel after block: HTTP {blocked_status} (expected 403)")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        revenue = sum(r["total"] for r in successful)
        print(f"\n📈 Average Response: {avg_time}s")
        print(f"   💰 Total Revenue: {revenue:.2f}")

    if failed:
        print("\n⚠️  Failed commit details (showing first 5):")
        for f in failed[:5]:
            print(f"   Table {f['table']} [{f['mode']}]: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": len(results),
        "successful": len(successful),
        "failed": len(failed),
        "consistent": stored_orders == expected_orders and blocked_status == 403,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush-Hour Simulation Script")
    parser.add_argument("--tables", type=int, default=TOTAL_TABLES, help="Number of tables")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    summary = asyncio.run(run_simulation(args.tables))
    sys.exit(0 if summary["consistent"] else 1)
