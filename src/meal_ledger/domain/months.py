"""Month settings and rate models."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from meal_ledger.domain.models import MealType

MAX_RANGE_DAYS = 31


@dataclass(frozen=True)
class Rates:
    """Per-meal rates."""

    lunch_rate: Decimal
    dinner_rate: Decimal

    def for_meal(self, meal_type: MealType) -> Decimal:
        """Return the rate for a meal."""
        return self.lunch_rate if meal_type == MealType.LUNCH else self.dinner_rate


@dataclass(frozen=True)
class MonthSettings:
    """Billing period with its rates and finalization flag."""

    id: UUID
    year: int
    month: int
    start_date: date
    end_date: date
    lunch_rate: Decimal
    dinner_rate: Decimal
    is_finalized: bool = False
    finalized_at: datetime | None = None
    finalized_by: UUID | None = None
    created_by: UUID | None = None

    @property
    def rates(self) -> Rates:
        """Return the rates of this month."""
        return Rates(lunch_rate=self.lunch_rate, dinner_rate=self.dinner_rate)

    def contains(self, day: date) -> bool:
        """Return True if ``day`` is inside the billing range."""
        return self.start_date <= day <= self.end_date

    def days(self) -> list[date]:
        """Return every date of the range."""
        return date_range(self.start_date, self.end_date)


def span_days(start: date, end: date) -> int:
    """Number of days in an inclusive range."""
    return (end - start).days + 1


def date_range(start: date, end: date) -> list[date]:
    """Return the inclusive list of dates between ``start`` and ``end``."""
    return [start + timedelta(days=offset) for offset in range(span_days(start, end))]
