"""
Authentication endpoint tests
"""
import pytest

from app.core.security import MAX_LOGIN_ATTEMPTS, create_access_token, verify_token

pytestmark = [pytest.mark.integration, pytest.mark.auth]


async def test_register_returns_public_profile(client):
    response = await client.post(
        "/api/auth/register",
        json={"email": "Novo@Clinica.com", "password": "uma-senha-longa", "fullName": "Bruno"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "novo@clinica.com"
    assert data["fullName"] == "Bruno"
    assert data["role"] == "psicologo"
    assert "password_hash" not in data


async def test_register_duplicate_email(client, test_user):
    response = await client.post(
        "/api/auth/register",
        json={"email": "ANA@clinica.com", "password": "outra-senha-123"},
    )

    assert response.status_code == 409
    assert response.json() == {"error": "email_already_exists"}


@pytest.mark.parametrize("body", [
    {"email": "not-an-email", "password": "uma-senha-longa"},
    {"email": "x@clinica.com", "password": "curta"},
    {"password": "uma-senha-longa"},
])
async def test_register_rejects_invalid_body(client, body):
    response = await client.post("/api/auth/register", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_body"


async def test_email_exists(client, test_user):
    found = await client.get("/api/auth/exists", params={"email": "ana@clinica.com"})
    missing = await client.get("/api/auth/exists", params={"email": "ninguem@clinica.com"})

    assert found.json() == {"exists": True}
    assert missing.json() == {"exists": False}


async def test_email_exists_requires_valid_email(client):
    response = await client.get("/api/auth/exists", params={"email": "nope"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_query"


async def test_login_success(client, test_user):
    response = await client.post(
        "/api/auth/login",
        json={"email": "Ana@Clinica.com", "password": "senha-segura-123"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["user"] == {
        "id": test_user.id,
        "email": "ana@clinica.com",
        "fullName": "Ana Souza",
        "role": "psicologo",
    }
    claims = verify_token(data["token"])
    assert claims["sub"] == test_user.id
    assert claims["email"] == "ana@clinica.com"


@pytest.mark.parametrize("email,password", [
    ("ana@clinica.com", "senha-errada"),
    ("ninguem@clinica.com", "senha-segura-123"),
])
async def test_login_invalid_credentials(client, test_user, email, password):
    response = await client.post("/api/auth/login", json={"email": email, "password": password})

    assert response.status_code == 401
    assert response.json() == {"error": "invalid_credentials"}


async def test_login_locks_after_repeated_failures(client, test_user):
    for _ in range(MAX_LOGIN_ATTEMPTS):
        await client.post("/api/auth/login", json={"email": "ana@clinica.com", "password": "errada"})

    response = await client.post(
        "/api/auth/login",
        json={"email": "ana@clinica.com", "password": "senha-segura-123"},
    )

    assert response.status_code == 429
    assert response.json() == {"error": "too_many_login_attempts"}


async def test_get_current_user(client, auth_headers, test_user):
    response = await client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == test_user.id
    assert data["email"] == "ana@clinica.com"
    assert data["createdAt"]


async def test_me_for_deleted_user(client, other_headers):
    response = await client.get("/api/auth/me", headers=other_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "user_not_found"}


async def test_protected_route_requires_token(client):
    response = await client.get("/api/patients")

    assert response.status_code == 401
    assert response.json() == {"error": "auth_required"}


@pytest.mark.parametrize("token", [
    "garbage",
    create_access_token({"email": "sem-sub@clinica.com"}),
])
async def test_protected_route_rejects_bad_token(client, token):
    response = await client.get("/api/patients", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json() == {"error": "invalid_token"}


@pytest.mark.unit
def test_parse_expires_in():
    from datetime import timedelta

    from app.core.security import parse_expires_in

    assert parse_expires_in("7d") == timedelta(days=7)
    assert parse_expires_in("12h") == timedelta(hours=12)
    assert parse_expires_in("90") == timedelta(seconds=90)
    assert parse_expires_in("soon") == timedelta(days=7)


@pytest.mark.unit
def test_password_hashing():
    from app.core.security import hash_password, pwd_context, verify_password

    hashed = hash_password("senha-segura-123")
    assert hashed.startswith("$2")
    assert verify_password("senha-segura-123", hashed)
    assert not verify_password("outra", hashed)

    # hashes imported from other systems are checked through passlib
    legacy = pwd_context.hash("senha-antiga", scheme="pbkdf2_sha256")
    assert verify_password("senha-antiga", legacy)
    assert not verify_password("senha-antiga", "not-a-hash")
