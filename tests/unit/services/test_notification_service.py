"""Unit tests for the notification service"""

import json

import httpx
import pytest
from warden.config import settings
from warden.services import notification_service as notification_module
from warden.services.notification_service import NotificationService, render_template


def _use_transport(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(notification_module.httpx, "AsyncClient", client_factory)


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_API_KEY", "test-email-key")
    return NotificationService()


@pytest.mark.unit
def test_render_template_escapes_variables():
    subject, body = render_template(
        "invitation",
        {
            "organization_name": "<script>alert(1)</script>",
            "inviter_email": "owner@example.com",
            "role": "admin",
            "url": "http://localhost:3000/accept-invitation/1",
        },
    )

    assert "<script>" not in body
    assert "&lt;script&gt;" in body
    assert subject.startswith("You have been invited to join")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disabled_without_api_key(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_API_KEY", "")

    def handler(request):
        raise AssertionError("email API must not be called")

    _use_transport(monkeypatch, handler)
    service = NotificationService()

    assert service.enabled is False
    assert await service.send_welcome_email("new@example.com", "New") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sends_through_email_api(monkeypatch, configured):
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["Authorization"]
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email-1"})

    _use_transport(monkeypatch, handler)

    result = await configured.send_two_factor_otp("user@example.com", "123456", 5)

    assert result == {"id": "email-1"}
    assert captured["auth"] == "Bearer test-email-key"
    assert captured["payload"]["to"] == ["user@example.com"]
    assert "123456" in captured["payload"]["html"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delivery_failure_is_logged_not_raised(monkeypatch, configured):
    _use_transport(monkeypatch, lambda request: httpx.Response(500, json={"error": "boom"}))

    assert await configured.send_password_reset_email("user@example.com", "http://x/reset", 60) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_network_error_is_logged_not_raised(monkeypatch, configured):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    _use_transport(monkeypatch, handler)

    assert await configured.send_2fa_enabled_email("user@example.com") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invitation_email_links_to_frontend(monkeypatch, configured):
    captured = {}

    def handler(request):
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email-2"})

    _use_transport(monkeypatch, handler)

    await configured.send_invitation_email("invitee@example.com", "Acme", "owner@example.com", "member", "inv-1")

    assert f"{settings.FRONTEND_URL}/accept-invitation/inv-1" in captured["payload"]["html"]
