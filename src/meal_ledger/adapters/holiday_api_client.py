"""Public holiday feed client (Nager.Date)."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class HolidayApiClient(Protocol):
    """Interface for the public holiday feed."""

    async def public_holidays(
        self, year: int, country_code: str
    ) -> list[dict[str, object]]:
        """Return the raw holiday entries of a year."""


@dataclass
class HttpxHolidayApiClient(HolidayApiClient):
    """HTTPX-backed Nager.Date client."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str) -> "HttpxHolidayApiClient":
        """Create a holiday client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def public_holidays(
        self, year: int, country_code: str
    ) -> list[dict[str, object]]:
        """Fetch public holidays for a country and year."""
        url = f"{self.base_url}/PublicHolidays/{year}/{country_code}"
        response = await self.http_client.get(url, timeout=10)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            raise ValueError("Unexpected holiday payload")
        return payload

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
