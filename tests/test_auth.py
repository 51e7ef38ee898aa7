"""
Tests for login, registration, profile and the token dependency.
"""

import pytest


@pytest.mark.anyio
async def test_login_with_username_returns_token_and_user(client, seeded):
    response = await client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Login successful"
    assert body["data"]["token"]
    user = body["data"]["user"]
    assert user["username"] == "admin"
    assert user["role"] == "ADMIN"
    assert user["isActive"] is True
    assert "passwordHash" not in user


@pytest.mark.anyio
async def test_login_with_email(client, seeded):
    response = await client.post("/api/auth/login", json={"username": "user@example.com", "password": "user123"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["username"] == "testuser"


@pytest.mark.anyio
async def test_login_wrong_password(client, seeded):
    response = await client.post("/api/auth/login", json={"username": "admin", "password": "wrong-pass"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid username or password"}


@pytest.mark.anyio
async def test_login_short_password_is_400(client, seeded):
    response = await client.post("/api/auth/login", json={"username": "admin", "password": "123"})
    assert response.status_code == 400


@pytest.mark.anyio
async def test_login_missing_fields_is_validation_error(client, seeded):
    response = await client.post("/api/auth/login", json={"username": "admin"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Request validation failed"
    assert body["details"]


@pytest.mark.anyio
async def test_register_then_profile(client, seeded):
    response = await client.post("/api/auth/register", json={
        "username": "new_user",
        "email": "New@Example.com",
        "password": "Secret123",
    })
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["role"] == "USER"
    assert data["user"]["email"] == "new@example.com"

    profile = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {data['token']}"})
    assert profile.status_code == 200
    assert profile.json()["data"]["user"]["username"] == "new_user"


@pytest.mark.anyio
@pytest.mark.parametrize("payload, error", [
    ({"username": "ab", "email": "a@example.com", "password": "Secret123"}, "Username must be 3-20 characters"),
    ({"username": "bad name", "email": "a@example.com", "password": "Secret123"},
     "Username may only contain letters, digits and underscores"),
    ({"username": "weakling", "email": "a@example.com", "password": "secret123"},
     "Password must contain upper and lower case letters and a digit"),
    ({"username": "admin", "email": "a@example.com", "password": "Secret123"}, "Username already exists"),
    ({"username": "someone", "email": "admin@example.com", "password": "Secret123"}, "Email already registered"),
])
async def test_register_rejections(client, seeded, payload, error):
    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == error


@pytest.mark.anyio
async def test_invalid_token_is_401(client, seeded):
    response = await client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token. Please log in again."


@pytest.mark.anyio
async def test_disabled_account_cannot_use_token(client, admin_headers, user_headers):
    users = (await client.get("/api/users", params={"search": "testuser"}, headers=admin_headers)).json()["data"]
    await client.put(f"/api/users/{users[0]['id']}", json={"isActive": False}, headers=admin_headers)

    response = await client.get("/api/auth/profile", headers=user_headers)
    assert response.status_code == 401
    assert response.json()["error"] == "User not found or disabled"


def test_password_hash_roundtrip():
    from opsconsole.services.auth_service import hash_password, verify_password
    hashed = hash_password("admin123")
    assert hashed != "admin123"
    assert verify_password("admin123", hashed)
    assert not verify_password("admin124", hashed)
    assert not verify_password("admin123", "plaintext-legacy-row")


def test_access_token_claims():
    from opsconsole.services.auth_service import create_access_token, decode_access_token
    claims = decode_access_token(create_access_token("abc", "admin", "ADMIN"))
    assert claims["sub"] == "abc"
    assert claims["username"] == "admin"
    assert claims["role"] == "ADMIN"
    assert decode_access_token("garbage") is None
