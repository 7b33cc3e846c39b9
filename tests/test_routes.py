"""Tests for the auth HTTP routes and error mapping."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from otp_auth.api.routes import get_auth_service
from otp_auth.main import app

MOBILE = "+201234567890"


@pytest_asyncio.fixture
async def client(service):
    app.dependency_overrides[get_auth_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _register(client, **overrides):
    payload = {
        "fullName": "Mona Adel",
        "mobile": MOBILE,
        "email": "mona@example.com",
        "password": "Secret123",
        "type": "patient",
    }
    payload.update(overrides)
    return await client.post("/auth/register", json=payload)


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_register_verify_login_over_http(client, notifier):
    resp = await _register(client)
    assert resp.status_code == 201
    assert resp.json()["mobile"] == MOBILE

    resp = await client.post(
        "/auth/verify-otp", json={"mobile": MOBILE, "code": notifier.last_code(MOBILE)}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["accessToken"]
    assert body["tokenType"] == "bearer"

    resp = await client.post("/auth/login", json={"mobile": MOBILE, "password": "Secret123"})
    assert resp.status_code == 200
    assert resp.json()["accessToken"]


@pytest.mark.asyncio
async def test_duplicate_registration_is_conflict(client):
    await _register(client)
    resp = await _register(client, email=None)
    assert resp.status_code == 409
    assert resp.json()["error"] == "Conflict"


@pytest.mark.asyncio
async def test_policy_violation(client):
    resp = await _register(client, type="admin")
    assert resp.status_code == 403
    assert resp.json()["error"] == "PolicyViolation"


@pytest.mark.asyncio
async def test_resend_rate_limited_sets_retry_after(client):
    await _register(client)
    resp = await client.post("/auth/resend-otp", json={"mobile": MOBILE})

    assert resp.status_code == 429
    assert resp.json()["error"] == "RateLimited"
    assert resp.json()["retryAfter"] == 60
    assert resp.headers["Retry-After"] == "60"


@pytest.mark.asyncio
async def test_login_errors_do_not_leak_existence(client, notifier):
    await _register(client)
    await client.post(
        "/auth/verify-otp", json={"mobile": MOBILE, "code": notifier.last_code(MOBILE)}
    )

    wrong = await client.post("/auth/login", json={"mobile": MOBILE, "password": "nope"})
    unknown = await client.post("/auth/login", json={"mobile": "+201009999999", "password": "nope"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


@pytest.mark.asyncio
async def test_forgot_is_generic(client):
    await _register(client)
    known = await client.post("/auth/forgot", json={"mobile": MOBILE})
    unknown = await client.post("/auth/forgot", json={"mobile": "+201009999999"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


@pytest.mark.asyncio
async def test_reset_mismatch_is_validation_error(client):
    resp = await client.post(
        "/auth/reset",
        json={
            "mobile": MOBILE,
            "otp": "123456",
            "newPassword": "NewSecret456",
            "newPasswordConfirm": "Other456789",
        },
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_guest_login(client):
    resp = await client.post("/auth/guest-login")
    assert resp.status_code == 200
    body = resp.json()
    assert body["accessToken"]
    assert body["role"] == "guest"


@pytest.mark.asyncio
async def test_malformed_payload_rejected_before_service(client, notifier):
    resp = await client.post("/auth/register", json={"mobile": MOBILE})
    assert resp.status_code == 422
    assert notifier.sent == []
