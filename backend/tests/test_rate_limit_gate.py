"""
Tests for the rate limit gate middleware.
"""
import logging

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.core.exceptions import RATE_LIMIT_MESSAGE
from app.core.rate_limit import RateLimiter, RateLimitPolicy
from app.models import User

TEST_PASSWORD = "Test123!"


def audit_events(caplog, event: str):
    return [
        r for r in caplog.records
        if r.name == "security" and getattr(r, "audit", {}).get("event") == event
    ]


def registration(n: int) -> dict:
    return {"username": f"traveler{n}", "email": f"traveler{n}@example.com", "password": TEST_PASSWORD}


@pytest.mark.asyncio
async def test_protected_endpoint_rejects_eleventh_request(client, session_factory, caplog):
    caplog.set_level(logging.INFO, logger="security")

    for n in range(10):
        response = await client.post("/api/users/register", json=registration(n))
        assert response.status_code == 201

    response = await client.post("/api/users/register", json=registration(10))

    assert response.status_code == 429
    assert response.json() == {"error": RATE_LIMIT_MESSAGE}
    assert 1 <= int(response.headers["Retry-After"]) <= 60

    # The route never ran for the rejected request
    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(User))
        rejected = await session.scalar(select(User).where(User.username == "traveler10"))
    assert count == 10
    assert rejected is None

    events = audit_events(caplog, "rate_limit_exceeded")
    assert len(events) == 1
    assert events[0].audit["policy"] == "protected_api"
    assert events[0].audit["path"] == "/api/users/register"


@pytest.mark.asyncio
async def test_protected_policy_shared_across_endpoints(client):
    for _ in range(10):
        await client.post("/api/users/forgot-password", json={"email": "nobody@example.com"})

    response = await client.post("/api/users/reset-password-token/abc", json={"password": TEST_PASSWORD})
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_general_api_policy(client, user, login):
    from app.main import app

    app.state.rate_limiter = RateLimiter({
        "login": RateLimitPolicy("login", 5, 60, "username"),
        "api": RateLimitPolicy("api", 3, 60, "ip"),
        "protected_api": RateLimitPolicy("protected_api", 10, 60, "ip"),
    })

    token = (await login("alice")).json()["token"]
    headers = {"Cookie": f"JWT={token}"}

    statuses = [(await client.get("/api/items", headers=headers)).status_code for _ in range(4)]
    assert statuses == [200, 200, 200, 429]


@pytest.mark.asyncio
async def test_login_path_not_gated_by_ip(client):
    # 12 failed logins with distinct usernames: never a 429, the login policy is per username
    for n in range(12):
        response = await client.post("/api/login", json={"username": f"ghost{n}", "password": "Wrong123!"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_non_api_paths_not_limited(client):
    for _ in range(15):
        response = await client.get("/")
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_forwarded_for_ignored_unless_trusted(client, monkeypatch):
    for n in range(10):
        await client.post(
            "/api/users/forgot-password",
            json={"email": "nobody@example.com"},
            headers={"X-Forwarded-For": f"203.0.113.{n}"},
        )
    response = await client.post(
        "/api/users/forgot-password",
        json={"email": "nobody@example.com"},
        headers={"X-Forwarded-For": "203.0.113.99"},
    )
    assert response.status_code == 429

    monkeypatch.setattr(settings, "TRUST_FORWARDED_FOR", True)
    response = await client.post(
        "/api/users/forgot-password",
        json={"email": "nobody@example.com"},
        headers={"X-Forwarded-For": "203.0.113.99, 10.0.0.1"},
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_gate_disabled(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    for _ in range(12):
        response = await client.post("/api/users/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_blank_forwarded_hop_uses_peer_address(client, monkeypatch):
    monkeypatch.setattr(settings, "TRUST_FORWARDED_FOR", True)
    response = await client.post(
        "/api/users/forgot-password",
        json={"email": "nobody@example.com"},
        headers={"X-Forwarded-For": ", 1.2.3.4"},
    )
    assert response.status_code == 200
