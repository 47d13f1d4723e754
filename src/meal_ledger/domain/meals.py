"""Meal participation domain models."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from uuid import UUID

from meal_ledger.domain.models import MealType
from meal_ledger.domain.months import MonthSettings


class StatusSource(StrEnum):
    """Layer that decided an effective status."""

    OVERRIDE = "override"
    MANUAL = "manual"
    DEFAULT = "default"


@dataclass(frozen=True)
class MealRecord:
    """Explicit per-user meal choice for one day."""

    id: UUID
    user_id: UUID
    day: date
    meal_type: MealType
    is_on: bool
    count: int
    is_manually_set: bool = True
    modified_by: UUID | None = None
    notes: str = ""
    updated_at: datetime | None = None


@dataclass(frozen=True)
class EffectiveStatus:
    """Resolved meal status for a (user, day, meal) cell."""

    user_id: UUID
    day: date
    meal_type: MealType
    is_on: bool
    count: int
    source: StatusSource
    reason: str
    togglable: bool = True
    edit_restriction: str | None = None
    override_id: UUID | None = None
    meal_id: UUID | None = None


@dataclass(frozen=True)
class ToggleOutcome:
    """Per-date result of a toggle request."""

    day: date
    applied: bool
    reason: str | None = None
    state: str | None = None
    record: MealRecord | None = None


@dataclass(frozen=True)
class ToggleDecision:
    """A permitted toggle and the month it lands in.

    ``force`` is set when the month is finalized and the actor may still
    edit it through the audited path.
    """

    user_id: UUID
    day: date
    meal_type: MealType
    month: MonthSettings | None
    force: bool = False
