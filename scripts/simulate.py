"""
Order Flow Simulation Script

Drives a running API end to end: registers an owner and a customer,
sets up a restaurant with a menu, fires orders concurrently, walks each
order through its status workflow and prints the resulting analytics.

Run from project root: python scripts/simulate.py --orders 20
"""

import asyncio
import sys
import random
import time
import argparse
import uuid
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:5000"
TOTAL_ORDERS = 20
PASSWORD = "simulation123"

STREETS = ["Main St", "Broadway", "5th Avenue", "Park Ave", "Madison Ave", "Lexington Ave"]
PAYMENT_METHODS = ["card", "cash"]
MENU_ITEMS = [
    {"name": "Pizza Margherita", "price": 14.99, "category": "Pizza"},
    {"name": "Pepperoni Pizza", "price": 16.99, "category": "Pizza"},
    {"name": "Caesar Salad", "price": 8.99, "category": "Salads"},
    {"name": "Garlic Bread", "price": 5.99, "category": "Sides"},
    {"name": "Tiramisu", "price": 7.99, "category": "Desserts"},
    {"name": "Sparkling Water", "price": 3.49, "category": "Drinks"},
]
STATUS_WORKFLOW = ["Confirmed", "Preparing", "Out for Delivery", "Delivered"]


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register(client: httpx.AsyncClient, role: str) -> dict[str, Any]:
    """Register a throwaway account and return the auth response."""
    suffix = uuid.uuid4().hex[:8]
    response = await client.post(
        f"{API_BASE_URL}/api/auth/register",
        json={
            "username": f"sim-{role}-{suffix}",
            "email": f"sim-{role}-{suffix}@example.com",
            "password": PASSWORD,
            "role": role,
            "contactNumber": f"555-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
        },
    )
    response.raise_for_status()
    return response.json()


def generate_order_payload(menu: list[dict]) -> dict[str, Any]:
    """Build a random order from the menu with client-side totals."""
    picks = random.sample(menu, k=random.randint(1, min(3, len(menu))))
    items = [
        {"menuItem": m["id"], "quantity": random.randint(1, 3), "price": m["price"]}
        for m in picks
    ]
    total = round(sum(i["price"] * i["quantity"] for i in items), 2)
    discount = random.choice([0.0, 0.0, 2.0])

    return {
        "items": items,
        "totalAmount": total,
        "discount": discount,
        "finalTotal": round(max(total - discount, 0.0), 2),
        "deliveryAddress": f"{random.randint(1, 999)} {random.choice(STREETS)}",
        "paymentMethod": random.choice(PAYMENT_METHODS),
    }


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    customer_token: str,
    restaurant_id: int,
    menu: list[dict],
) -> dict[str, Any]:
    """Place one order and report timing."""
    payload = generate_order_payload(menu)
    payload["restaurant"] = restaurant_id
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=payload,
            headers=auth(customer_token),
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data.get("id"),
                "total": data.get("finalTotal", 0),
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def walk_statuses(client: httpx.AsyncClient, owner_token: str, order_id: int) -> int:
    """Advance an order through the workflow; returns the number of accepted updates."""
    accepted = 0
    for status in STATUS_WORKFLOW:
        response = await client.patch(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"orderStatus": status},
            headers=auth(owner_token),
        )
        if response.status_code != 200:
            print(f"   ⚠️ Order #{order_id} -> {status}: {response.text[:80]}")
            break
        accepted += 1
    return accepted


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def setup(client: httpx.AsyncClient) -> dict[str, Any]:
    """Create the owner, customer, restaurant and menu used by the run."""
    owner = await register(client, "restaurant")
    customer = await register(client, "customer")

    response = await client.post(
        f"{API_BASE_URL}/api/restaurants",
        json={"name": "Simulation Trattoria", "cuisine": "Italian", "address": "1 Test Plaza"},
        headers=auth(owner["token"]),
    )
    response.raise_for_status()
    restaurant = response.json()

    menu = []
    for item in MENU_ITEMS:
        response = await client.post(
            f"{API_BASE_URL}/api/{restaurant['id']}/menu-items",
            json=item,
            headers=auth(owner["token"]),
        )
        response.raise_for_status()
        menu.append(response.json())

    print(f"   Owner: {owner['user']['username']}")
    print(f"   Customer: {customer['user']['username']}")
    print(f"   Restaurant #{restaurant['id']} with {len(menu)} menu items")
    return {"owner": owner, "customer": customer, "restaurant": restaurant, "menu": menu}


async def run_simulation(num_orders: int = TOTAL_ORDERS, walk: bool = True) -> dict[str, Any]:
    """
    Run the order flow simulation.

    Args:
        num_orders: Number of orders to place concurrently
        walk: Advance every placed order through the status workflow
    """
    print("=" * 70)
    print("🔥 ORDER FLOW SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(timeout=30.0) as client:
        print("\n🧱 Setting up accounts and menu...")
        ctx = await setup(client)
        owner_token = ctx["owner"]["token"]
        restaurant_id = ctx["restaurant"]["id"]

        print("\n🚀 Firing orders...\n")
        start_time = time.time()
        tasks = [
            send_order(client, i + 1, ctx["customer"]["token"], restaurant_id, ctx["menu"])
            for i in range(num_orders)
        ]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        updates = 0
        if walk and successful:
            print("🔄 Walking orders through their status workflow...")
            counts = await asyncio.gather(*[
                walk_statuses(client, owner_token, r["order_id"]) for r in successful
            ])
            updates = sum(counts)

        report = await client.post(
            f"{API_BASE_URL}/api/sales-report",
            json={"restaurantId": restaurant_id, "period": "day"},
            headers=auth(owner_token),
        )
        popular = await client.post(
            f"{API_BASE_URL}/api/popular-items",
            json={"restaurantId": restaurant_id},
            headers=auth(owner_token),
        )

    # Print results
    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")
    if walk:
        print(f"🔔 Status updates (each notifies the customer): {updates}")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Client-side Revenue: ${sum(r['total'] for r in successful):.2f}")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    if report.status_code == 200:
        data = report.json()
        print(f"\n🧾 Sales Report (day):")
        print(f"   Total Sales: ${data['totalSales']:.2f}")
        print(f"   Orders: {data['totalOrders']}  Items: {data['totalItems']}")
        print(f"   Discounts: ${data['totalDiscounts']:.2f}")
        print(f"   Average Order: ${data['averageOrderValue']:.2f}")
    else:
        print(f"\n❌ Sales report failed: {report.text[:100]}")

    if popular.status_code == 200:
        print(f"\n🏆 Popular Items:")
        for rank, entry in enumerate(popular.json(), start=1):
            print(f"   {rank}. {entry['name']} x{entry['totalSold']}")

    print("\n" + "=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "status_updates": updates,
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    """Pre-flight check against /health."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ API unreachable: {e}")
            return False

    if response.status_code != 200:
        print(f"   ❌ Failed: {response.text}")
        return False

    data = response.json()
    print(f"   ✅ Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Redis: {data.get('redis')}")
    print(f"   Notifications: {data.get('notification_service')}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Flow Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--base-url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--no-status", action="store_true", help="Skip status workflow updates")
    parser.add_argument("--skip-health", action="store_true", help="Skip the health pre-flight")
    args = parser.parse_args()

    API_BASE_URL = args.base_url.rstrip("/")

    if not args.skip_health:
        print("\n🩺 Health Check...")
        if not asyncio.run(check_health()):
            print("\n❌ Pre-flight check failed. Start the API before running the simulation.")
            sys.exit(1)

    asyncio.run(run_simulation(num_orders=args.orders, walk=not args.no_status))
