"""OTP delivery: log-only sender and Resend HTTP API sender."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from retailpos.core.config import settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Delivery failed. Never carries the message body."""


class Notifier(Protocol):
    async def send(self, address: str, subject: str, body: str) -> None: ...


class LogOnlyNotifier:
    """Logs instead of sending email. Use when no provider is configured."""

    async def send(self, address: str, subject: str, body: str) -> None:
        logger.info("Notify: would send %r to %s", subject[:80], address)


class ResendNotifier:
    """Sends HTML email through the Resend REST API."""

    def __init__(
        self,
        api_key: str,
        *,
        sender: str = settings.EMAIL_FROM,
        api_url: str = settings.RESEND_API_URL,
        timeout: float = settings.NOTIFIER_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport

    async def send(self, address: str, subject: str, body: str) -> None:
        payload = {"from": self._sender, "to": [address], "subject": subject, "html": body}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(self._api_url, json=payload, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationError(
                f"Email provider rejected message (status {exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationError(f"Email provider unreachable: {exc.__class__.__name__}") from exc
        logger.info("Email %r sent to %s", subject[:80], address)


def otp_email_body(otp: str, window_minutes: int) -> str:
    return (
        f"<p>Your One-Time Password (OTP) is: <strong>{otp}</strong></p>"
        f"<p>This OTP is valid for {window_minutes} minutes.</p>"
    )


def build_notifier() -> Notifier:
    if settings.NOTIFIER_BACKEND == "resend":
        if not settings.RESEND_API_KEY:
            logger.warning("NOTIFIER_BACKEND=resend but RESEND_API_KEY is unset; logging only")
            return LogOnlyNotifier()
        return ResendNotifier(settings.RESEND_API_KEY)
    return LogOnlyNotifier()
