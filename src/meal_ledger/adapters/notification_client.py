"""Webhook client for balance notifications."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class NotificationClient(Protocol):
    """Interface for delivering notifications."""

    async def send(self, payload: dict[str, object]) -> None:
        """Deliver one notification payload."""


@dataclass
class HttpxNotificationClient(NotificationClient):
    """HTTPX-backed webhook notifier."""

    webhook_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, webhook_url: str) -> "HttpxNotificationClient":
        """Create a notifier with a managed httpx session."""
        return cls(webhook_url=webhook_url, http_client=httpx.AsyncClient())

    async def send(self, payload: dict[str, object]) -> None:
        """POST a payload to the webhook."""
        response = await self.http_client.post(
            self.webhook_url, json=payload, timeout=10
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
