"""Supabase repository for holidays."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import optional_date, optional_str
from meal_ledger.domain.holidays import Holiday, HolidaySource, HolidayType
from meal_ledger.services.holidays import HolidayRepository


@dataclass
class SupabaseHolidayRepository(HolidayRepository):
    """Supabase implementation for holidays."""

    client: Client

    def get_holiday(self, holiday_id: UUID) -> Holiday | None:
        """Return a holiday by id."""
        response = (
            self.client.table("holidays")
            .select("*")
            .eq("id", str(holiday_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_holiday(response.data[0])

    def list_holidays(
        self, start: date | None, end: date | None, active_only: bool
    ) -> list[Holiday]:
        """Return dated holidays in the range plus all recurring ones."""
        dated = self.client.table("holidays").select("*").eq("is_recurring", False)
        if start is not None:
            dated = dated.gte("date", start.isoformat())
        if end is not None:
            dated = dated.lte("date", end.isoformat())
        recurring = self.client.table("holidays").select("*").eq("is_recurring", True)
        if active_only:
            dated = dated.eq("is_active", True)
            recurring = recurring.eq("is_active", True)
        rows = (dated.order("date").execute().data or []) + (
            recurring.execute().data or []
        )
        return [_parse_holiday(row) for row in rows]

    def find_by_date(self, day: date) -> Holiday | None:
        """Return the non-recurring holiday stored for ``day``."""
        response = (
            self.client.table("holidays")
            .select("*")
            .eq("date", day.isoformat())
            .eq("is_recurring", False)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_holiday(response.data[0])

    def create_holiday(self, holiday: Holiday) -> None:
        """Insert a holiday."""
        response = self.client.table("holidays").insert(_payload(holiday)).execute()
        if not response.data:
            raise RuntimeError("Failed to create holiday")

    def update_holiday(self, holiday: Holiday) -> None:
        """Replace a stored holiday."""
        self.client.table("holidays").update(_payload(holiday)).eq(
            "id", str(holiday.id)
        ).execute()


def _payload(holiday: Holiday) -> dict[str, object]:
    return {
        "id": str(holiday.id),
        "name": holiday.name,
        "type": holiday.type.value,
        "date": optional_str(holiday.day),
        "is_recurring": holiday.is_recurring,
        "recurring_month": holiday.recurring_month,
        "recurring_day": holiday.recurring_day,
        "is_active": holiday.is_active,
        "source": holiday.source.value,
    }


def _parse_holiday(row: dict[str, object]) -> Holiday:
    return Holiday(
        id=UUID(str(row["id"])),
        name=str(row.get("name") or ""),
        type=HolidayType(row.get("type") or HolidayType.GOVERNMENT),
        day=optional_date(row.get("date")),
        is_recurring=bool(row.get("is_recurring", False)),
        recurring_month=row.get("recurring_month"),
        recurring_day=row.get("recurring_day"),
        is_active=bool(row.get("is_active", True)),
        source=HolidaySource(row.get("source") or HolidaySource.MANUAL),
    )
