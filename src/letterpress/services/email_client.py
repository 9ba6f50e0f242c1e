"""HTTP client for the transactional email gateway.

Failures are classified so the delivery worker can decide between retrying
and dropping a task:

- network errors, timeouts, 5xx, 408 and 429 are transient;
- 400, 406 and 422 mean the gateway rejected the message or recipient and
  are permanent;
- any other unexpected status is treated as transient so that deliverable
  mail is never silently dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from letterpress.core.settings import settings
from letterpress.domain.subscriber_email import SubscriberEmail

# Configure logger for this module
logger = logging.getLogger(__name__)

PERMANENT_FAILURE_STATUSES = frozenset({400, 406, 422})


class EmailDeliveryError(RuntimeError):
    """Base exception raised when the gateway does not accept a message."""


class TransientDeliveryError(EmailDeliveryError):
    """The send may succeed if attempted again later."""


class PermanentDeliveryError(EmailDeliveryError):
    """The gateway will never accept this message for this recipient."""


@dataclass(frozen=True)
class EmailClientConfig:
    """Immutable configuration for the email gateway."""

    base_url: str
    sender: str
    authorization_token: str
    timeout_seconds: float


def load_email_client_config() -> EmailClientConfig:
    """Build configuration object from global settings."""

    return EmailClientConfig(
        base_url=settings.email_base_url,
        sender=settings.email_sender,
        authorization_token=settings.email_authorization_token,
        timeout_seconds=float(settings.email_timeout_seconds),
    )


class EmailClient:
    """Async wrapper around the gateway's ``POST /email`` endpoint."""

    def __init__(
        self,
        config: EmailClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_email_client_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def send_email(
        self,
        recipient: SubscriberEmail,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        """Hand one message to the gateway.

        Raises:
            TransientDeliveryError: If the send should be retried later.
            PermanentDeliveryError: If the gateway rejected the message outright.
        """
        client = await self._ensure_client()
        payload = {
            "From": self.config.sender,
            "To": recipient.value,
            "Subject": subject,
            "HtmlBody": html_content,
            "TextBody": text_content,
        }
        headers = {"X-Postmark-Server-Token": self.config.authorization_token}

        try:
            response = await client.post("/email", json=payload, headers=headers)
        except httpx.TransportError as exc:
            raise TransientDeliveryError(f"Email gateway request failed: {exc}") from exc

        if response.is_success:
            return
        if response.status_code in PERMANENT_FAILURE_STATUSES:
            raise PermanentDeliveryError(
                f"Email gateway rejected message to {recipient} ({response.status_code})"
            )
        raise TransientDeliveryError(
            f"Email gateway responded with {response.status_code} for {recipient}"
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _EmailClientSingleton:
    """Singleton wrapper for EmailClient."""

    _instance: EmailClient | None = None

    @classmethod
    def get_instance(cls) -> EmailClient:
        """Get or create the singleton EmailClient instance."""
        if cls._instance is None:
            cls._instance = EmailClient()
        return cls._instance


def get_email_client() -> EmailClient:
    """Return a singleton email client instance."""
    return _EmailClientSingleton.get_instance()
