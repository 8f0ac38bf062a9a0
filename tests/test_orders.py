import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Notification, Order, OrderStatus
from app.services.orders import VALID_STATUSES, can_transition, parse_status
from app.core.exceptions import InvalidStatus


class RecordingTask:
    """Stands in for the Celery task; records what would have been queued."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def delay(self, payload):
        self.calls.append(payload)
        if self.error is not None:
            raise self.error


async def _notifications_for(db_session, order_id):
    result = await db_session.execute(
        select(Notification)
        .where(Notification.related_entity_type == "Order", Notification.related_entity_id == order_id)
        .order_by(Notification.id)
    )
    return list(result.scalars().all())


# =============================================================================
# STATUS HELPERS
# =============================================================================

def test_parse_status_accepts_wire_tokens():
    assert parse_status("Out for Delivery") is OrderStatus.OUT_FOR_DELIVERY
    assert VALID_STATUSES == ["Placed", "Confirmed", "Preparing", "Out for Delivery", "Delivered", "Cancelled"]


@pytest.mark.parametrize("token", ["placed", "Shipped", "", None, 3])
def test_parse_status_rejects_unknown(token):
    with pytest.raises(InvalidStatus):
        parse_status(token)


def test_transition_table():
    assert can_transition(OrderStatus.PLACED, OrderStatus.CONFIRMED)
    assert can_transition(OrderStatus.PREPARING, OrderStatus.CANCELLED)
    assert can_transition(OrderStatus.DELIVERED, OrderStatus.DELIVERED)
    assert not can_transition(OrderStatus.PLACED, OrderStatus.DELIVERED)
    assert not can_transition(OrderStatus.DELIVERED, OrderStatus.PLACED)
    assert not can_transition(OrderStatus.CANCELLED, OrderStatus.CONFIRMED)


# =============================================================================
# CREATE
# =============================================================================

async def test_create_order_requires_credential(client, restaurant, menu):
    response = await client.post("/api/orders", json={
        "restaurant": restaurant["id"],
        "items": [{"menuItem": menu["naan"]["id"], "quantity": 1}],
    })
    assert response.status_code == 401


async def test_create_order_keeps_client_totals(client, customer, restaurant, menu):
    response = await client.post(
        "/api/orders",
        json={
            "restaurant": restaurant["id"],
            "user": customer.id,
            "items": [
                {"menuItem": menu["naan"]["id"], "quantity": 2, "price": 3.0},
                {"menuItem": menu["chicken"]["id"], "quantity": 1, "price": 13.5},
            ],
            "totalAmount": 19.5,
            "discount": 2.0,
            "finalTotal": 17.5,
            "deliveryAddress": "1 Main St",
            "paymentMethod": "card",
        },
        headers=customer.headers,
    )

    assert response.status_code == 201
    order = response.json()
    assert order["user"] == customer.id
    assert order["restaurant"] == restaurant["id"]
    assert order["orderStatus"] == "Placed"
    assert order["totalAmount"] == 19.5
    assert order["discount"] == 2.0
    assert order["finalTotal"] == 17.5
    assert order["paymentMethod"] == "card"
    assert [i["menuItem"] for i in order["items"]] == [menu["naan"]["id"], menu["chicken"]["id"]]
    assert [i["quantity"] for i in order["items"]] == [2, 1]


async def test_create_order_for_someone_else_is_forbidden(client, customer, register_user, restaurant, menu):
    other = await register_user("bob")
    response = await client.post(
        "/api/orders",
        json={
            "restaurant": restaurant["id"],
            "user": other.id,
            "items": [{"menuItem": menu["naan"]["id"], "quantity": 1}],
        },
        headers=customer.headers,
    )
    assert response.status_code == 403


async def test_create_order_unknown_restaurant(client, customer):
    response = await client.post(
        "/api/orders",
        json={"restaurant": 9999, "items": [{"menuItem": 1, "quantity": 1}]},
        headers=customer.headers,
    )
    assert response.status_code == 404


async def test_create_order_requires_items(client, customer, restaurant):
    response = await client.post(
        "/api/orders", json={"restaurant": restaurant["id"], "items": []}, headers=customer.headers,
    )
    assert response.status_code == 400


async def test_create_order_recomputes_totals_when_enabled(
    client, customer, restaurant, menu, settings, monkeypatch,
):
    monkeypatch.setattr(settings, "recompute_order_totals", True)

    response = await client.post(
        "/api/orders",
        json={
            "restaurant": restaurant["id"],
            "items": [
                {"menuItem": menu["chicken"]["id"], "quantity": 2, "price": 0.01},
                {"menuItem": menu["naan"]["id"], "quantity": 1},
            ],
            "totalAmount": 1.0,
            "discount": 5.0,
            "finalTotal": 1.0,
        },
        headers=customer.headers,
    )

    assert response.status_code == 201
    order = response.json()
    assert [i["price"] for i in order["items"]] == [13.5, 3.0]
    assert order["totalAmount"] == 30.0
    assert order["finalTotal"] == 25.0


async def test_recompute_rejects_foreign_menu_items(
    client, customer, restaurant, create_restaurant, create_menu_item, register_user, settings, monkeypatch,
):
    monkeypatch.setattr(settings, "recompute_order_totals", True)
    rival = await register_user("rival", role="restaurant")
    rival_restaurant = await create_restaurant(rival, "Rival Diner")
    foreign = await create_menu_item(rival, rival_restaurant["id"], "Burger", 9.0)

    response = await client.post(
        "/api/orders",
        json={"restaurant": restaurant["id"], "items": [{"menuItem": foreign["id"], "quantity": 1}]},
        headers=customer.headers,
    )
    assert response.status_code == 400


# =============================================================================
# LIST / GET
# =============================================================================

async def test_list_orders_for_owner(
    client, owner, customer, restaurant, menu, place_order, register_user, create_restaurant, create_menu_item,
):
    first = await place_order(customer, restaurant["id"], [(menu["naan"]["id"], 1)], final_total=3.0)
    second = await place_order(customer, restaurant["id"], [(menu["chicken"]["id"], 1)], final_total=13.5)

    rival = await register_user("rival", role="restaurant")
    rival_restaurant = await create_restaurant(rival, "Rival Diner")
    burger = await create_menu_item(rival, rival_restaurant["id"], "Burger", 9.0)
    await place_order(customer, rival_restaurant["id"], [(burger["id"], 1)], final_total=9.0)

    response = await client.get("/api/orders", headers=owner.headers)

    assert response.status_code == 200
    listed = response.json()
    assert [o["id"] for o in listed] == [second["id"], first["id"]]
    assert listed[0]["user"] == {"id": customer.id, "username": "alice", "email": "alice@foodmail.com"}
    assert listed[0]["restaurant"]["name"] == restaurant["name"]


async def test_list_orders_without_restaurants(client, register_user):
    fresh = await register_user("fresh-owner", role="restaurant")
    response = await client.get("/api/orders", headers=fresh.headers)
    assert response.status_code == 404


async def test_get_order_visibility(client, owner, customer, restaurant, menu, place_order, register_user):
    order = await place_order(customer, restaurant["id"], [(menu["naan"]["id"], 1)], final_total=3.0)
    stranger = await register_user("mallory")

    assert (await client.get(f"/api/orders/{order['id']}", headers=customer.headers)).status_code == 200
    assert (await client.get(f"/api/orders/{order['id']}", headers=owner.headers)).status_code == 200
    assert (await client.get(f"/api/orders/{order['id']}", headers=stranger.headers)).status_code == 403
    assert (await client.get("/api/orders/9999", headers=owner.headers)).status_code == 404


# =============================================================================
# STATUS UPDATES
# =============================================================================

@pytest.fixture
async def order(customer, restaurant, menu, place_order):
    return await place_order(customer, restaurant["id"], [(menu["chicken"]["id"], 2)], final_total=27.0)


@pytest.mark.parametrize("status", VALID_STATUSES)
async def test_status_update_records_one_notification(client, owner, customer, order, db_session, status):
    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": status}, headers=owner.headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Order status updated and customer notified"
    assert body["orderStatus"] == status
    assert body["orderId"] == order["id"]

    notifications = await _notifications_for(db_session, order["id"])
    assert len(notifications) == 1
    assert notifications[0].recipient_id == customer.id
    assert notifications[0].id == body["notificationId"]
    assert status in notifications[0].title
    assert status in notifications[0].message
    assert notifications[0].is_read is False


async def test_status_update_rejects_unknown_status(client, owner, order, db_session):
    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": "Teleported"}, headers=owner.headers,
    )
    assert response.status_code == 400

    stored = await db_session.get(Order, order["id"])
    assert stored.order_status is OrderStatus.PLACED
    assert await _notifications_for(db_session, order["id"]) == []


async def test_failed_commit_rolls_back_status_and_notification(client, owner, order, db_session, monkeypatch):
    async def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)

    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": "Preparing"}, headers=owner.headers,
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Persistence Error"

    stored = await db_session.get(Order, order["id"])
    assert stored.order_status is OrderStatus.PLACED
    assert await _notifications_for(db_session, order["id"]) == []


async def test_status_update_unknown_order(client, owner, restaurant):
    response = await client.patch("/api/orders/9999/status", json={"orderStatus": "Confirmed"}, headers=owner.headers)
    assert response.status_code == 404


async def test_status_update_requires_restaurant_owner(client, customer, order, register_user, db_session):
    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": "Delivered"}, headers=customer.headers,
    )
    assert response.status_code == 403

    rival = await register_user("rival", role="restaurant")
    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": "Delivered"}, headers=rival.headers,
    )
    assert response.status_code == 403
    assert await _notifications_for(db_session, order["id"]) == []


async def test_status_updates_without_enforcement_allow_any_order(client, owner, order):
    for status in ["Delivered", "Placed", "Cancelled", "Confirmed"]:
        response = await client.patch(
            f"/api/orders/{order['id']}/status", json={"orderStatus": status}, headers=owner.headers,
        )
        assert response.status_code == 200


async def test_enforced_transitions(client, owner, order, settings, monkeypatch, db_session):
    monkeypatch.setattr(settings, "enforce_status_transitions", True)
    url = f"/api/orders/{order['id']}/status"

    response = await client.patch(url, json={"orderStatus": "Delivered"}, headers=owner.headers)
    assert response.status_code == 409
    assert response.json()["error"] == "Invalid Transition"

    for status in ["Confirmed", "Confirmed", "Preparing", "Out for Delivery", "Delivered"]:
        response = await client.patch(url, json={"orderStatus": status}, headers=owner.headers)
        assert response.status_code == 200, status

    response = await client.patch(url, json={"orderStatus": "Cancelled"}, headers=owner.headers)
    assert response.status_code == 409

    assert len(await _notifications_for(db_session, order["id"])) == 5


async def test_status_update_queues_delivery(client, owner, customer, order, settings, monkeypatch):
    task = RecordingTask()
    monkeypatch.setattr("app.tasks.deliver_notification", task)
    monkeypatch.setattr(settings, "notifications_dispatch_enabled", True)

    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": "Preparing"}, headers=owner.headers,
    )

    assert response.status_code == 200
    [payload] = task.calls
    assert payload["notification_id"] == response.json()["notificationId"]
    assert payload["recipient_id"] == customer.id
    assert payload["recipient_email"] == "alice@foodmail.com"
    assert payload["recipient_phone"] == "555-123-4567"
    assert "Preparing" in payload["title"]


async def test_queue_failure_does_not_fail_update(client, owner, order, settings, monkeypatch, db_session):
    task = RecordingTask(error=ConnectionError("broker down"))
    monkeypatch.setattr("app.tasks.deliver_notification", task)
    monkeypatch.setattr(settings, "notifications_dispatch_enabled", True)

    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"orderStatus": "Confirmed"}, headers=owner.headers,
    )

    assert response.status_code == 200
    assert len(task.calls) == 1
    assert len(await _notifications_for(db_session, order["id"])) == 1
