import random
import string

import pytest
from conftest import auth_headers, create_admin, create_cashier
from httpx import AsyncClient

# 💀 OMEGA FUZZER: GENERATING CHAOS


def generate_garbage(length=60):
    return "".join(random.choices(string.ascii_letters + string.digits + "!@#$%^&*()", k=length))


def generate_sql_injection():
    payloads = ["' OR '1'='1", "'; DROP TABLE users--", "admin'--", "' UNION SELECT 1,2,3--"]
    return random.choice(payloads)


def generate_xss():
    payloads = ["<script>alert(1)</script>", "<img src=x onerror=alert(1)>", "javascript:alert(1)"]
    return random.choice(payloads)


def _chaos(i: int) -> str:
    if i % 10 == 0:
        return generate_sql_injection()
    if i % 11 == 0:
        return generate_xss()
    return generate_garbage(random.randint(1, 60))


@pytest.mark.asyncio
async def test_omega_auth_fuzz(async_client: AsyncClient, db_session):
    """Fuzz /auth/login with garbage identities."""
    await create_cashier(db_session)
    for i in range(50):
        email = _chaos(i) + "@test.com"
        password = generate_garbage(60)

        resp = await async_client.post(
            "/api/v1/auth/login",
            data={"username": email, "password": password},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert resp.status_code in [401, 400, 422], f"Login crashed with {email}"


@pytest.mark.asyncio
async def test_omega_reset_password_fuzz(async_client: AsyncClient, db_session):
    """Fuzz /auth/reset-password; every outcome must be a 4xx."""
    cashier = await create_cashier(db_session)
    for i in range(40):
        password = _chaos(i)
        payload = {
            "email": random.choice([cashier.login_email, _chaos(i)]),
            "otp": random.choice([_chaos(i), "000000", "", None]),
            "new_password": password,
            "confirm_password": random.choice([password, _chaos(i + 1)]),
        }
        resp = await async_client.post("/api/v1/auth/reset-password", json=payload)
        assert resp.status_code in [400, 422], f"Reset crashed on payload: {payload}"


@pytest.mark.asyncio
async def test_omega_cashier_id_fuzz(async_client: AsyncClient, db_session):
    """Fuzz cashier ids in admin routes."""
    admin = await create_admin(db_session)
    headers = auth_headers(admin)
    ids = ["0", "not-a-uuid", "' OR 1=1", "%00", "00000000-0000-0000-0000-000000000000"]
    for cid in ids:
        resp = await async_client.get(f"/api/v1/admin/cashiers/{cid}", headers=headers)
        assert resp.status_code in [400, 404], f"Admin route crashed on id: {cid}"
        resp = await async_client.post(f"/api/v1/admin/cashiers/{cid}/reset-initiate", headers=headers)
        assert resp.status_code in [400, 404], f"Reset-initiate crashed on id: {cid}"


@pytest.mark.asyncio
async def test_omega_forgot_password_fuzz(async_client: AsyncClient):
    for i in range(30):
        resp = await async_client.post("/api/v1/auth/forgot-password", json={"email": _chaos(i)})
        assert resp.status_code == 200
