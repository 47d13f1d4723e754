"""Supabase repository for breakfast entries."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import optional_str, optional_uuid, to_decimal
from meal_ledger.domain.breakfast import Breakfast, BreakfastParticipant
from meal_ledger.services.charges import BreakfastRepository


@dataclass
class SupabaseBreakfastRepository(BreakfastRepository):
    """Supabase implementation for breakfasts; participants live in a jsonb column."""

    client: Client

    def get_breakfast(self, breakfast_id: UUID) -> Breakfast | None:
        """Return a breakfast by id."""
        response = (
            self.client.table("breakfasts")
            .select("*")
            .eq("id", str(breakfast_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_breakfast(response.data[0])

    def find_by_date(self, day: date) -> Breakfast | None:
        """Return the breakfast entered for ``day``."""
        response = (
            self.client.table("breakfasts")
            .select("*")
            .eq("date", day.isoformat())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_breakfast(response.data[0])

    def list_breakfasts(self, start: date, end: date) -> list[Breakfast]:
        """Return breakfasts inside an inclusive range."""
        response = (
            self.client.table("breakfasts")
            .select("*")
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
            .order("date")
            .execute()
        )
        return [_parse_breakfast(row) for row in response.data or []]

    def create_breakfast(self, breakfast: Breakfast) -> None:
        """Insert a breakfast."""
        response = self.client.table("breakfasts").insert(_payload(breakfast)).execute()
        if not response.data:
            raise RuntimeError("Failed to create breakfast")

    def update_breakfast(self, breakfast: Breakfast) -> None:
        """Replace a stored breakfast."""
        self.client.table("breakfasts").update(_payload(breakfast)).eq(
            "id", str(breakfast.id)
        ).execute()


def _payload(breakfast: Breakfast) -> dict[str, object]:
    return {
        "id": str(breakfast.id),
        "date": breakfast.day.isoformat(),
        "total_cost": str(breakfast.total_cost),
        "description": breakfast.description,
        "submitted_by": str(breakfast.submitted_by),
        "is_finalized": breakfast.is_finalized,
        "is_reversed": breakfast.is_reversed,
        "participants": [
            {
                "user_id": str(participant.user_id),
                "cost": str(participant.cost),
                "deducted": participant.deducted,
                "transaction_id": optional_str(participant.transaction_id),
            }
            for participant in breakfast.participants
        ],
    }


def _parse_breakfast(row: dict[str, object]) -> Breakfast:
    return Breakfast(
        id=UUID(str(row["id"])),
        day=date.fromisoformat(str(row["date"])),
        total_cost=to_decimal(row.get("total_cost")),
        description=str(row.get("description") or ""),
        submitted_by=UUID(str(row["submitted_by"])),
        is_finalized=bool(row.get("is_finalized", False)),
        is_reversed=bool(row.get("is_reversed", False)),
        participants=[
            BreakfastParticipant(
                user_id=UUID(str(item["user_id"])),
                cost=to_decimal(item.get("cost")),
                deducted=bool(item.get("deducted", False)),
                transaction_id=optional_uuid(item.get("transaction_id")),
            )
            for item in row.get("participants") or []
        ],
    )
