"""Rule override domain models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from uuid import UUID

from meal_ledger.domain.models import MealType, Role


class TargetType(StrEnum):
    """Who an override applies to."""

    USER = "user"
    ALL_USERS = "all_users"
    GLOBAL = "global"

    @property
    def specificity(self) -> int:
        """Higher is more specific."""
        return {TargetType.GLOBAL: 0, TargetType.ALL_USERS: 1, TargetType.USER: 2}[
            self
        ]


class DateType(StrEnum):
    """How an override selects dates."""

    SINGLE = "single"
    RANGE = "range"
    RECURRING = "recurring"


class RecurringPattern(StrEnum):
    """Recurrence for recurring overrides."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class OverrideMealType(StrEnum):
    """Meals an override covers."""

    LUNCH = "lunch"
    DINNER = "dinner"
    BOTH = "both"

    def covers(self, meal_type: MealType) -> bool:
        """Return True if the override applies to ``meal_type``."""
        return self == OverrideMealType.BOTH or self.value == meal_type.value


class OverrideAction(StrEnum):
    """Forced meal state."""

    FORCE_ON = "force_on"
    FORCE_OFF = "force_off"


ROLE_PRIORITY = {
    Role.USER: 2,
    Role.MANAGER: 3,
    Role.ADMIN: 4,
    Role.SUPERADMIN: 4,
}


@dataclass(frozen=True)
class RuleOverride:
    """Administrator-authored rule forcing a meal on or off.

    Overrides sit on top of manual meal records and never modify them.
    """

    id: UUID
    target_type: TargetType
    date_type: DateType
    start_date: date
    meal_type: OverrideMealType
    action: OverrideAction
    priority: int
    created_at: datetime
    target_user_id: UUID | None = None
    end_date: date | None = None
    recurring_pattern: RecurringPattern | None = None
    recurring_days: tuple[int, ...] = field(default_factory=tuple)
    created_by: UUID | None = None
    created_by_role: Role | None = None
    reason: str = ""
    is_active: bool = True
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Return True if the override has passed its expiry."""
        return self.expires_at is not None and self.expires_at <= now

    def targets(self, user_id: UUID) -> bool:
        """Return True if the override targets ``user_id``."""
        if self.target_type == TargetType.USER:
            return self.target_user_id == user_id
        return True

    def covers_date(self, day: date) -> bool:
        """Return True if the date rule selects ``day``."""
        if self.date_type == DateType.SINGLE:
            return day == self.start_date
        if self.date_type == DateType.RANGE:
            end = self.end_date or self.start_date
            return self.start_date <= day <= end
        if day < self.start_date:
            return False
        if self.end_date is not None and day > self.end_date:
            return False
        if self.recurring_pattern == RecurringPattern.DAILY:
            return True
        if self.recurring_pattern == RecurringPattern.WEEKLY:
            return day.weekday() in self.recurring_days
        if self.recurring_pattern == RecurringPattern.MONTHLY:
            return day.day in self.recurring_days
        return False

    def applies(
        self, user_id: UUID, day: date, meal_type: MealType, now: datetime
    ) -> bool:
        """Return True if the override governs the meal cell."""
        return (
            self.is_active
            and not self.is_expired(now)
            and self.meal_type.covers(meal_type)
            and self.targets(user_id)
            and self.covers_date(day)
        )

    def sort_key(self) -> tuple[int, int, float]:
        """Key that orders the winning override first."""
        return (
            -self.priority,
            -self.target_type.specificity,
            -self.created_at.timestamp(),
        )


@dataclass(frozen=True)
class OverrideDraft:
    """Caller-supplied fields of a new or edited override."""

    target_type: TargetType
    date_type: DateType
    start_date: date
    meal_type: OverrideMealType
    action: OverrideAction
    target_user_id: UUID | None = None
    end_date: date | None = None
    recurring_pattern: RecurringPattern | None = None
    recurring_days: tuple[int, ...] = field(default_factory=tuple)
    reason: str = ""
    expires_at: datetime | None = None


def matching_overrides(
    overrides: list[RuleOverride],
    user_id: UUID,
    day: date,
    meal_type: MealType,
    now: datetime,
) -> list[RuleOverride]:
    """Return the overrides governing a cell, winner first."""
    matching = [
        override
        for override in overrides
        if override.applies(user_id, day, meal_type, now)
    ]
    return sorted(matching, key=RuleOverride.sort_key)
