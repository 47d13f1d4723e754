"""System-wide meal policy settings."""

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from meal_ledger.domain.errors import ValidationError
from meal_ledger.domain.holidays import HolidayType
from meal_ledger.domain.models import MealType

FRIDAY = 4
SATURDAY = 5
LAST_HOUR = 23


@dataclass(frozen=True)
class WeekendPolicy:
    """Weekday-based default-off rules."""

    friday_off: bool = True
    saturday_off: bool = False
    odd_saturday_off: bool = True
    even_saturday_off: bool = False

    def validate(self) -> None:
        """Reject overlapping Saturday rules."""
        enabled = [
            name
            for name, flag in (
                ("saturday_off", self.saturday_off),
                ("odd_saturday_off", self.odd_saturday_off),
                ("even_saturday_off", self.even_saturday_off),
            )
            if flag
        ]
        if len(enabled) > 1:
            raise ValidationError(
                "Only one Saturday rule may be enabled",
                {"enabled": enabled},
            )


@dataclass(frozen=True)
class HolidayPolicy:
    """Which holiday types turn meals off by default."""

    government_holiday_off: bool = True
    optional_holiday_off: bool = False
    religious_holiday_off: bool = True

    def turns_off(self, holiday_type: HolidayType) -> bool:
        """Return True if holidays of this type default meals off."""
        return {
            HolidayType.GOVERNMENT: self.government_holiday_off,
            HolidayType.OPTIONAL: self.optional_holiday_off,
            HolidayType.RELIGIOUS: self.religious_holiday_off,
        }[holiday_type]


@dataclass(frozen=True)
class CutoffTimes:
    """Same-day toggle cutoff hours (24h, local time)."""

    lunch: int = 10
    dinner: int = 16

    def for_meal(self, meal_type: MealType) -> int:
        """Return the cutoff hour for a meal."""
        return self.lunch if meal_type == MealType.LUNCH else self.dinner

    def validate(self) -> None:
        """Ensure hours are on the clock."""
        for name, hour in (("lunch", self.lunch), ("dinner", self.dinner)):
            if not 0 <= hour <= LAST_HOUR:
                raise ValidationError(
                    "Cutoff hour must be between 0 and 23", {name: hour}
                )


@dataclass(frozen=True)
class DefaultMealStatus:
    """Status a meal takes when nothing else applies."""

    lunch: bool = True
    dinner: bool = False

    def for_meal(self, meal_type: MealType) -> bool:
        """Return the default status for a meal."""
        return self.lunch if meal_type == MealType.LUNCH else self.dinner


@dataclass(frozen=True)
class BreakfastPolicy:
    """How submitted breakfast costs reach the ledger."""

    auto_deduct: bool = True


@dataclass(frozen=True)
class GlobalSettings:
    """Process-wide meal policy."""

    weekend_policy: WeekendPolicy = field(default_factory=WeekendPolicy)
    holiday_policy: HolidayPolicy = field(default_factory=HolidayPolicy)
    cutoff_times: CutoffTimes = field(default_factory=CutoffTimes)
    default_meal_status: DefaultMealStatus = field(default_factory=DefaultMealStatus)
    breakfast_policy: BreakfastPolicy = field(default_factory=BreakfastPolicy)
    low_balance_threshold: Decimal = Decimal("500")

    def validate(self) -> None:
        """Validate the whole settings document."""
        self.weekend_policy.validate()
        self.cutoff_times.validate()
        if self.low_balance_threshold < 0:
            raise ValidationError("Low balance threshold cannot be negative")


def saturday_ordinal(day: date) -> int:
    """Return which Saturday of the month ``day`` is (1-based)."""
    return math.ceil(day.day / 7)


def weekend_off_reason(day: date, policy: WeekendPolicy) -> str | None:
    """Return the weekend rule that turns ``day`` off, if any."""
    weekday = day.weekday()
    if weekday == FRIDAY and policy.friday_off:
        return "friday"
    if weekday != SATURDAY:
        return None
    if policy.saturday_off:
        return "saturday"
    odd = saturday_ordinal(day) % 2 == 1
    if odd and policy.odd_saturday_off:
        return "odd_saturday"
    if not odd and policy.even_saturday_off:
        return "even_saturday"
    return None


def is_weekend_off(day: date, policy: WeekendPolicy) -> bool:
    """Return True if the weekend policy turns ``day`` off."""
    return weekend_off_reason(day, policy) is not None
