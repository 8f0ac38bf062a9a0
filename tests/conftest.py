"""
Shared fixtures.

The environment is configured before ``app`` is imported so the cached
settings point at a throwaway SQLite database and never queue Celery tasks.
"""

import os
import tempfile
from dataclasses import dataclass

_TMP_DIR = tempfile.mkdtemp(prefix="restaurant-orders-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["NOTIFICATIONS_DISPATCH_ENABLED"] = "false"
os.environ["MOCK_NOTIFICATION_FAILURE_RATE"] = "0"
os.environ["ENFORCE_STATUS_TRANSITIONS"] = "false"
os.environ["RECOMPUTE_ORDER_TOTALS"] = "false"

import httpx
import pytest

from app.core.config import get_settings
from app.database import Base, engine, async_session_maker
from app.main import app


@dataclass
class Account:
    id: int
    username: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def db_session(database):
    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def client(database):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def register_user(client):
    async def _register(username: str, role: str = "customer", **extra) -> Account:
        response = await client.post("/api/auth/register", json={
            "username": username,
            "email": f"{username}@foodmail.com",
            "password": "secret123",
            "role": role,
            **extra,
        })
        assert response.status_code == 201, response.text
        body = response.json()
        return Account(id=body["user"]["id"], username=username, token=body["token"])

    return _register


@pytest.fixture
def create_restaurant(client):
    async def _create(account: Account, name: str = "Spice Route", **extra) -> dict:
        response = await client.post(
            "/api/restaurants",
            json={"name": name, "address": "12 Curry Lane", "cuisine": "Indian", **extra},
            headers=account.headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def create_menu_item(client):
    async def _create(account: Account, restaurant_id: int, name: str, price: float) -> dict:
        response = await client.post(
            f"/api/{restaurant_id}/menu-items",
            json={"name": name, "price": price},
            headers=account.headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def place_order(client):
    async def _place(
        account: Account,
        restaurant_id: int,
        items: list[tuple[int, int]],
        final_total: float = 0.0,
        discount: float = 0.0,
        **extra,
    ) -> dict:
        response = await client.post(
            "/api/orders",
            json={
                "restaurant": restaurant_id,
                "items": [{"menuItem": menu_item, "quantity": qty} for menu_item, qty in items],
                "totalAmount": final_total + discount,
                "discount": discount,
                "finalTotal": final_total,
                **extra,
            },
            headers=account.headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _place


# =============================================================================
# COMMON ACTORS
# =============================================================================

@pytest.fixture
async def owner(register_user) -> Account:
    return await register_user("owner", role="restaurant")


@pytest.fixture
async def customer(register_user) -> Account:
    return await register_user("alice", contactNumber="555-123-4567")


@pytest.fixture
async def restaurant(create_restaurant, owner) -> dict:
    return await create_restaurant(owner)


@pytest.fixture
async def menu(create_menu_item, owner, restaurant) -> dict[str, dict]:
    chicken = await create_menu_item(owner, restaurant["id"], "Butter Chicken", 13.5)
    naan = await create_menu_item(owner, restaurant["id"], "Garlic Naan", 3.0)
    return {"chicken": chicken, "naan": naan}
