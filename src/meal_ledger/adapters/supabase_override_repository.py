"""Supabase repository for rule overrides."""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import (
    optional_date,
    optional_datetime,
    optional_str,
    optional_uuid,
)
from meal_ledger.domain.models import MealType, Role
from meal_ledger.domain.overrides import (
    DateType,
    OverrideAction,
    OverrideMealType,
    RecurringPattern,
    RuleOverride,
    TargetType,
)
from meal_ledger.services.overrides import OverrideRepository


@dataclass
class SupabaseOverrideRepository(OverrideRepository):
    """Supabase implementation for rule overrides."""

    client: Client

    def get_override(self, override_id: UUID) -> RuleOverride | None:
        """Return an override by id."""
        response = (
            self.client.table("rule_overrides")
            .select("*")
            .eq("id", str(override_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_override(response.data[0])

    def list_overrides(self, active_only: bool) -> list[RuleOverride]:
        """Return overrides, newest first."""
        query = self.client.table("rule_overrides").select("*")
        if active_only:
            query = query.eq("is_active", True)
        response = query.order("created_at", desc=True).execute()
        return [_parse_override(row) for row in response.data or []]

    def list_candidates(self, user_id: UUID, meal_type: MealType) -> list[RuleOverride]:
        """Return active overrides that target the user and cover the meal."""
        response = (
            self.client.table("rule_overrides")
            .select("*")
            .eq("is_active", True)
            .in_("meal_type", [meal_type.value, OverrideMealType.BOTH.value])
            .or_(
                "target_type.in.(global,all_users),"
                f"target_user_id.eq.{user_id}"
            )
            .execute()
        )
        return [_parse_override(row) for row in response.data or []]

    def create_override(self, override: RuleOverride) -> None:
        """Insert an override."""
        response = (
            self.client.table("rule_overrides").insert(_payload(override)).execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create rule override")

    def update_override(self, override: RuleOverride) -> None:
        """Replace a stored override."""
        self.client.table("rule_overrides").update(_payload(override)).eq(
            "id", str(override.id)
        ).execute()


def _payload(override: RuleOverride) -> dict[str, object]:
    return {
        "id": str(override.id),
        "target_type": override.target_type.value,
        "target_user_id": optional_str(override.target_user_id),
        "date_type": override.date_type.value,
        "start_date": override.start_date.isoformat(),
        "end_date": optional_str(override.end_date),
        "recurring_pattern": (
            override.recurring_pattern.value if override.recurring_pattern else None
        ),
        "recurring_days": list(override.recurring_days),
        "meal_type": override.meal_type.value,
        "action": override.action.value,
        "priority": override.priority,
        "created_by": optional_str(override.created_by),
        "created_by_role": (
            override.created_by_role.value if override.created_by_role else None
        ),
        "reason": override.reason,
        "is_active": override.is_active,
        "expires_at": optional_str(override.expires_at),
        "created_at": override.created_at.isoformat(),
    }


def _parse_override(row: dict[str, object]) -> RuleOverride:
    pattern = row.get("recurring_pattern")
    role = row.get("created_by_role")
    return RuleOverride(
        id=UUID(str(row["id"])),
        target_type=TargetType(row["target_type"]),
        target_user_id=optional_uuid(row.get("target_user_id")),
        date_type=DateType(row["date_type"]),
        start_date=date.fromisoformat(str(row["start_date"])),
        end_date=optional_date(row.get("end_date")),
        recurring_pattern=RecurringPattern(pattern) if pattern else None,
        recurring_days=tuple(int(day) for day in row.get("recurring_days") or []),
        meal_type=OverrideMealType(row["meal_type"]),
        action=OverrideAction(row["action"]),
        priority=int(row.get("priority") or 0),
        created_by=optional_uuid(row.get("created_by")),
        created_by_role=Role(role) if role else None,
        reason=str(row.get("reason") or ""),
        is_active=bool(row.get("is_active", True)),
        expires_at=optional_datetime(row.get("expires_at")),
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )
