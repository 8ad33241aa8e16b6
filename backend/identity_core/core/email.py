"""Outbound email notifier.

Verification and reset links are delivered through a Notifier. The
Resend implementation is a simple HTTP POST; the logging implementation
is used in development when no API key is configured.

Notifiers raise NotificationDeliveryError on failure. Whether that
reaches the end user is decided by the account lifecycle service.
"""

import logging
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx

from identity_core.core.config import Settings, settings
from identity_core.core.errors import NotificationDeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class Notifier(Protocol):
    """Delivers account emails. Fire-and-forget from the core's view."""

    async def send_verification_email(self, email: str, token: str) -> None: ...

    async def send_reset_email(self, email: str, token: str) -> None: ...


def verification_url(token: str, *, frontend_url: str | None = None) -> str:
    """Link the user follows to verify their email."""
    base = frontend_url or settings.frontend_url
    return f"{base}/verify-email?{urlencode({'token': token}, quote_via=quote)}"


def reset_url(token: str, *, frontend_url: str | None = None) -> str:
    """Link the user follows to choose a new password."""
    base = frontend_url or settings.frontend_url
    return f"{base}/reset-password?{urlencode({'token': token}, quote_via=quote)}"


class ResendNotifier:
    """Sends plain-text emails through the Resend API.

    Args:
        api_key: Resend API key.
        sender: From address.
        frontend_url: Base URL the links point at.
        client: Optional shared httpx client (a short-lived one is
            created per email otherwise).
    """

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        frontend_url: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._frontend_url = frontend_url
        self._client = client

    async def send_verification_email(self, email: str, token: str) -> None:
        link = verification_url(token, frontend_url=self._frontend_url)
        await self._send(
            to_email=email,
            subject="Email Verification",
            text=(
                "Thank you for registering! Please verify your email address:\n\n"
                f"{link}\n\n"
                "If you didn't create this account, please ignore this email."
            ),
        )

    async def send_reset_email(self, email: str, token: str) -> None:
        link = reset_url(token, frontend_url=self._frontend_url)
        await self._send(
            to_email=email,
            subject="Password Reset Request",
            text=(
                "You requested a password reset for your account:\n\n"
                f"{link}\n\n"
                "This link will expire in 1 hour. "
                "If you didn't request this, please ignore this email."
            ),
        )

    async def _send(self, *, to_email: str, subject: str, text: str) -> None:
        """POST one email to Resend.

        Raises:
            NotificationDeliveryError: On any transport or HTTP error.
        """
        payload = {
            "from": self._sender,
            "to": to_email,
            "subject": subject,
            "text": text,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            if self._client is not None:
                resp = await self._client.post(
                    _RESEND_API_URL,
                    headers=headers,
                    json=payload,
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(
                        _RESEND_API_URL,
                        headers=headers,
                        json=payload,
                        timeout=_RESEND_TIMEOUT,
                    )
                    resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to send email", extra={"subject": subject})
            raise NotificationDeliveryError() from exc


class LoggingNotifier:
    """Development notifier: records that an email would have been sent.

    The token itself is never logged.
    """

    async def send_verification_email(self, email: str, token: str) -> None:  # noqa: ARG002
        logger.info("Verification email issued", extra={"email": email})

    async def send_reset_email(self, email: str, token: str) -> None:  # noqa: ARG002
        logger.info("Password reset email issued", extra={"email": email})


def build_notifier(config: Settings | None = None) -> Notifier:
    """Pick the notifier for the current configuration.

    Resend when an API key is configured, logging otherwise.
    """
    config = config or settings
    api_key = config.resend_api_key.get_secret_value()
    if api_key:
        return ResendNotifier(
            api_key=api_key,
            sender=config.email_from,
            frontend_url=config.frontend_url,
        )
    if config.environment == "production":
        logger.warning("RESEND_API_KEY not set in production; emails are only logged")
    return LoggingNotifier()
