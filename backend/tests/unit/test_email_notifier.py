"""Tests for the outbound email notifiers."""

import json
import logging

import httpx
import pytest
from pydantic import SecretStr

from identity_core.core.config import Settings
from identity_core.core.email import (
    LoggingNotifier,
    ResendNotifier,
    build_notifier,
    reset_url,
    verification_url,
)
from identity_core.core.errors import NotificationDeliveryError

_FRONTEND = "https://app.example.com"
_TOKEN = "tok_abc-123"  # nosec B105


def _notifier(handler) -> tuple[ResendNotifier, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = ResendNotifier(
        api_key="re_test",
        sender="noreply@example.com",
        frontend_url=_FRONTEND,
        client=client,
    )
    return notifier, client


class TestLinks:
    """Tests for verification_url() and reset_url()."""

    def test_verification_url(self):
        assert (
            verification_url(_TOKEN, frontend_url=_FRONTEND)
            == f"{_FRONTEND}/verify-email?token={_TOKEN}"
        )

    def test_reset_url(self):
        assert (
            reset_url(_TOKEN, frontend_url=_FRONTEND)
            == f"{_FRONTEND}/reset-password?token={_TOKEN}"
        )

    def test_token_is_query_escaped(self):
        assert "token=a%2Fb" in verification_url("a/b", frontend_url=_FRONTEND)


class TestResendNotifier:
    """Tests for ResendNotifier."""

    async def test_posts_verification_email(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "email_1"})

        notifier, client = _notifier(handler)
        async with client:
            await notifier.send_verification_email("jane@example.com", _TOKEN)

        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == "https://api.resend.com/emails"
        assert request.headers["Authorization"] == "Bearer re_test"
        body = json.loads(request.content)
        assert body["to"] == "jane@example.com"
        assert body["from"] == "noreply@example.com"
        assert f"{_FRONTEND}/verify-email?token={_TOKEN}" in body["text"]

    async def test_posts_reset_email_with_expiry_notice(self):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "email_2"})

        notifier, client = _notifier(handler)
        async with client:
            await notifier.send_reset_email("jane@example.com", _TOKEN)

        assert f"{_FRONTEND}/reset-password?token={_TOKEN}" in bodies[0]["text"]
        assert "1 hour" in bodies[0]["text"]

    async def test_http_error_raises_delivery_error(self):
        def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
            return httpx.Response(500, json={"message": "boom"})

        notifier, client = _notifier(handler)
        async with client:
            with pytest.raises(NotificationDeliveryError) as exc_info:
                await notifier.send_verification_email("jane@example.com", _TOKEN)
        assert exc_info.value.code == "NOTIFICATION_FAILED"

    async def test_transport_error_raises_delivery_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        notifier, client = _notifier(handler)
        async with client:
            with pytest.raises(NotificationDeliveryError):
                await notifier.send_reset_email("jane@example.com", _TOKEN)


class TestLoggingNotifier:
    """Tests for LoggingNotifier."""

    async def test_logs_without_token(self, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.INFO):
            await LoggingNotifier().send_verification_email("jane@example.com", _TOKEN)
            await LoggingNotifier().send_reset_email("jane@example.com", _TOKEN)
        assert "Verification email issued" in caplog.text
        assert "Password reset email issued" in caplog.text
        assert _TOKEN not in caplog.text


class TestBuildNotifier:
    """Tests for build_notifier()."""

    def test_resend_when_api_key_configured(self):
        config = Settings(resend_api_key=SecretStr("re_live"))
        assert isinstance(build_notifier(config), ResendNotifier)

    def test_logging_without_api_key(self):
        config = Settings(resend_api_key=SecretStr(""))
        assert isinstance(build_notifier(config), LoggingNotifier)
