async def test_register_returns_token_and_user(client):
    response = await client.post("/api/auth/register", json={
        "username": "marco",
        "email": "marco@foodmail.com",
        "password": "secret123",
        "role": "restaurant",
        "contactNumber": "555-000-1111",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["user"]["username"] == "marco"
    assert body["user"]["role"] == "restaurant"
    assert body["user"]["contactNumber"] == "555-000-1111"
    assert "password" not in body["user"]


async def test_register_defaults_to_customer(client):
    response = await client.post("/api/auth/register", json={
        "username": "bob", "email": "bob@foodmail.com", "password": "secret123",
    })
    assert response.json()["user"]["role"] == "customer"


async def test_register_rejects_duplicates(client, customer):
    response = await client.post("/api/auth/register", json={
        "username": "alice", "email": "other@foodmail.com", "password": "secret123",
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists"


async def test_register_rejects_invalid_body(client):
    response = await client.post("/api/auth/register", json={
        "username": "x", "email": "not-an-email", "password": "1",
    })
    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_register_rejects_unknown_role(client):
    response = await client.post("/api/auth/register", json={
        "username": "eve", "email": "eve@foodmail.com", "password": "secret123", "role": "admin",
    })
    assert response.status_code == 400


async def test_login_and_profile(client, customer):
    response = await client.post("/api/auth/login", json={
        "email": "alice@foodmail.com", "password": "secret123",
    })
    assert response.status_code == 200
    token = response.json()["token"]

    profile = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert profile.status_code == 200
    assert profile.json()["id"] == customer.id
    assert profile.json()["email"] == "alice@foodmail.com"


async def test_login_rejects_wrong_password(client, customer):
    response = await client.post("/api/auth/login", json={
        "email": "alice@foodmail.com", "password": "wrong-password",
    })
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


async def test_login_rejects_unknown_email(client):
    response = await client.post("/api/auth/login", json={
        "email": "ghost@foodmail.com", "password": "secret123",
    })
    assert response.status_code == 401


async def test_users_endpoint_never_exposes_passwords(client, customer):
    created = await client.post("/api/users", json={
        "username": "carol", "email": "carol@foodmail.com", "password": "secret123",
    })
    assert created.status_code == 201

    listed = await client.get("/api/users")
    assert listed.status_code == 200
    usernames = [u["username"] for u in listed.json()]
    assert usernames == ["alice", "carol"]
    assert all("password" not in u for u in listed.json())
