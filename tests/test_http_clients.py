"""Tests for HTTP-based adapters."""

import asyncio
import json

import httpx
import pytest

from meal_ledger.adapters.holiday_api_client import HttpxHolidayApiClient
from meal_ledger.adapters.notification_client import HttpxNotificationClient


def test_holiday_client_fetches_year_and_country() -> None:
    seen_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_paths.append(request.url.path)
        return httpx.Response(
            200,
            json=[{"date": "2026-03-26", "name": "Independence Day"}],
        )

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxHolidayApiClient(
        base_url="https://holidays.test/api/v3", http_client=async_client
    )

    entries = asyncio.run(client.public_holidays(2026, "BD"))

    assert seen_paths == ["/api/v3/PublicHolidays/2026/BD"]
    assert entries[0]["name"] == "Independence Day"


def test_holiday_client_rejects_non_list_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "unknown country"})

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxHolidayApiClient(
        base_url="https://holidays.test", http_client=async_client
    )

    with pytest.raises(ValueError, match="Unexpected holiday payload"):
        asyncio.run(client.public_holidays(2026, "XX"))


def test_notification_client_posts_json() -> None:
    received: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        received.append(json.loads(request.content.decode()))
        return httpx.Response(204)

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxNotificationClient(
        webhook_url="https://hooks.test/low-balance", http_client=async_client
    )

    asyncio.run(client.send({"event": "low_balance", "balance": "120"}))

    assert received == [{"event": "low_balance", "balance": "120"}]


def test_notification_client_raises_on_server_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "down"})

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxNotificationClient(
        webhook_url="https://hooks.test/low-balance", http_client=async_client
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.send({"event": "low_balance"}))
