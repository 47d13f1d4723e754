"""Holiday reference data."""

from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from uuid import UUID


class HolidayType(StrEnum):
    """Holiday categories with independent meal policies."""

    GOVERNMENT = "government"
    OPTIONAL = "optional"
    RELIGIOUS = "religious"


class HolidaySource(StrEnum):
    """Where a holiday row came from."""

    MANUAL = "manual"
    API = "api"


@dataclass(frozen=True)
class Holiday:
    """A dated or yearly recurring holiday."""

    id: UUID
    name: str
    type: HolidayType = HolidayType.GOVERNMENT
    day: date | None = None
    is_recurring: bool = False
    recurring_month: int | None = None
    recurring_day: int | None = None
    is_active: bool = True
    source: HolidaySource = HolidaySource.MANUAL

    def matches(self, day: date) -> bool:
        """Return True if the holiday falls on ``day``."""
        if not self.is_active:
            return False
        if self.is_recurring:
            return (self.recurring_month, self.recurring_day) == (day.month, day.day)
        return self.day == day


@dataclass(frozen=True)
class HolidaySyncResult:
    """Outcome of a holiday feed sync."""

    year: int
    added: int
    updated: int
    skipped: int
    errors: list[str]


def pick_holiday(holidays: list[Holiday], day: date) -> Holiday | None:
    """Return the holiday on ``day``, preferring exact-date entries."""
    matching = [holiday for holiday in holidays if holiday.matches(day)]
    if not matching:
        return None
    matching.sort(key=lambda holiday: holiday.is_recurring)
    return matching[0]
