"""
Tests for the SendGrid email service.
"""
import json

import httpx
import pytest

from app.core.config import settings
from app.services.email_service import EmailService, build_reset_link


def service_with_transport(handler) -> EmailService:
    service = EmailService()
    service.api_key = "SG.test"
    service._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return service


def test_build_reset_link(monkeypatch):
    monkeypatch.setattr(settings, "FRONTEND_URL", "https://trips.example.com/")
    assert build_reset_link("abc") == "https://trips.example.com/reset-password/abc"


@pytest.mark.asyncio
async def test_not_configured():
    service = EmailService()
    service.api_key = ""
    result = await service.send_password_reset("alice@example.com", "alice", "abc")
    assert not result.success
    assert result.error == "Email not configured"


@pytest.mark.asyncio
async def test_password_reset_email():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(202, headers={"X-Message-Id": "msg-1"})

    service = service_with_transport(handler)
    result = await service.send_password_reset("alice@example.com", "alice", "f" * 64)
    await service.close()

    assert result.success
    assert result.message_id == "msg-1"

    payload = sent[0]
    assert payload["subject"] == "Password recovery"
    assert payload["personalizations"][0]["to"] == [{"email": "alice@example.com"}]
    body = payload["content"][0]["value"]
    assert "Hello alice" in body
    assert build_reset_link("f" * 64) in body


@pytest.mark.asyncio
async def test_provider_rejection():
    service = service_with_transport(lambda request: httpx.Response(400, text="bad sender"))
    result = await service.send_password_reset("alice@example.com", "alice", "abc")
    assert not result.success
    assert result.error == "bad sender"


@pytest.mark.asyncio
async def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("unreachable")

    service = service_with_transport(handler)
    result = await service.send_password_reset("alice@example.com", "alice", "abc")
    assert not result.success
