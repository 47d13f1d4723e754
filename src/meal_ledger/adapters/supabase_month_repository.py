"""Supabase repository for month settings."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import (
    optional_datetime,
    optional_str,
    optional_uuid,
    to_decimal,
)
from meal_ledger.domain.months import MonthSettings
from meal_ledger.services.months import MonthRepository


@dataclass
class SupabaseMonthRepository(MonthRepository):
    """Supabase implementation for month settings."""

    client: Client

    def get_month(self, month_id: UUID) -> MonthSettings | None:
        """Return a month by id."""
        return self._first(
            self.client.table("month_settings")
            .select("*")
            .eq("id", str(month_id))
            .limit(1)
            .execute()
            .data
        )

    def find_by_period(self, year: int, month: int) -> MonthSettings | None:
        """Return the settings for a calendar month."""
        return self._first(
            self.client.table("month_settings")
            .select("*")
            .eq("year", year)
            .eq("month", month)
            .limit(1)
            .execute()
            .data
        )

    def find_containing(self, day: date) -> MonthSettings | None:
        """Return the month whose range contains ``day``."""
        return self._first(
            self.client.table("month_settings")
            .select("*")
            .lte("start_date", day.isoformat())
            .gte("end_date", day.isoformat())
            .limit(1)
            .execute()
            .data
        )

    def find_overlapping(self, start: date, end: date) -> list[MonthSettings]:
        """Return months whose range intersects ``[start, end]``."""
        response = (
            self.client.table("month_settings")
            .select("*")
            .lte("start_date", end.isoformat())
            .gte("end_date", start.isoformat())
            .execute()
        )
        return [_parse_month(row) for row in response.data or []]

    def list_months(self) -> list[MonthSettings]:
        """Return all months, newest first."""
        response = (
            self.client.table("month_settings")
            .select("*")
            .order("start_date", desc=True)
            .execute()
        )
        return [_parse_month(row) for row in response.data or []]

    def create_month(self, month: MonthSettings) -> None:
        """Insert month settings."""
        response = self.client.table("month_settings").insert(_payload(month)).execute()
        if not response.data:
            raise RuntimeError("Failed to create month settings")

    def update_month(self, month: MonthSettings) -> None:
        """Replace stored month settings."""
        self.client.table("month_settings").update(_payload(month)).eq(
            "id", str(month.id)
        ).execute()

    @staticmethod
    def _first(rows: list[dict[str, object]] | None) -> MonthSettings | None:
        if not rows:
            return None
        return _parse_month(rows[0])


def _payload(month: MonthSettings) -> dict[str, object]:
    return {
        "id": str(month.id),
        "year": month.year,
        "month": month.month,
        "start_date": month.start_date.isoformat(),
        "end_date": month.end_date.isoformat(),
        "lunch_rate": str(month.lunch_rate),
        "dinner_rate": str(month.dinner_rate),
        "is_finalized": month.is_finalized,
        "finalized_at": optional_str(month.finalized_at),
        "finalized_by": optional_str(month.finalized_by),
        "created_by": optional_str(month.created_by),
    }


def _parse_month(row: dict[str, object]) -> MonthSettings:
    return MonthSettings(
        id=UUID(str(row["id"])),
        year=int(row["year"]),
        month=int(row["month"]),
        start_date=date.fromisoformat(str(row["start_date"])),
        end_date=date.fromisoformat(str(row["end_date"])),
        lunch_rate=to_decimal(row.get("lunch_rate")),
        dinner_rate=to_decimal(row.get("dinner_rate")),
        is_finalized=bool(row.get("is_finalized", False)),
        finalized_at=optional_datetime(row.get("finalized_at")),
        finalized_by=optional_uuid(row.get("finalized_by")),
        created_by=optional_uuid(row.get("created_by")),
    )
