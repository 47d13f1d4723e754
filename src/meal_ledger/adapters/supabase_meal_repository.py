"""Supabase repository for meal records."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import (
    optional_datetime,
    optional_str,
    optional_uuid,
)
from meal_ledger.domain.meals import MealRecord
from meal_ledger.domain.models import MealType
from meal_ledger.services.meals import MealRepository


@dataclass
class SupabaseMealRepository(MealRepository):
    """Supabase implementation for meal records."""

    client: Client

    def get_meal(
        self, user_id: UUID, day: date, meal_type: MealType
    ) -> MealRecord | None:
        """Return the record for a cell, if any."""
        response = (
            self.client.table("meals")
            .select("*")
            .eq("user_id", str(user_id))
            .eq("date", day.isoformat())
            .eq("meal_type", meal_type.value)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_meal(response.data[0])

    def list_meals(
        self,
        user_id: UUID | None,
        start: date,
        end: date,
        meal_type: MealType | None,
    ) -> list[MealRecord]:
        """Return records inside an inclusive date range."""
        query = (
            self.client.table("meals")
            .select("*")
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
        )
        if user_id is not None:
            query = query.eq("user_id", str(user_id))
        if meal_type is not None:
            query = query.eq("meal_type", meal_type.value)
        response = query.order("date").execute()
        return [_parse_meal(row) for row in response.data or []]

    def upsert_meal(self, record: MealRecord) -> MealRecord:
        """Insert or replace the record for its cell."""
        response = (
            self.client.table("meals")
            .upsert(
                {
                    "id": str(record.id),
                    "user_id": str(record.user_id),
                    "date": record.day.isoformat(),
                    "meal_type": record.meal_type.value,
                    "is_on": record.is_on,
                    "count": record.count,
                    "is_manually_set": record.is_manually_set,
                    "modified_by": optional_str(record.modified_by),
                    "notes": record.notes,
                    "updated_at": optional_str(record.updated_at),
                },
                on_conflict="user_id,date,meal_type",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to upsert meal record")
        return _parse_meal(response.data[0])


def _parse_meal(row: dict[str, object]) -> MealRecord:
    return MealRecord(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        day=date.fromisoformat(str(row["date"])),
        meal_type=MealType(row["meal_type"]),
        is_on=bool(row["is_on"]),
        count=int(row.get("count") or 0),
        is_manually_set=bool(row.get("is_manually_set", True)),
        modified_by=optional_uuid(row.get("modified_by")),
        notes=str(row.get("notes") or ""),
        updated_at=optional_datetime(row.get("updated_at")),
    )
