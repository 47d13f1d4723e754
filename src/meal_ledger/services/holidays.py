"""Holiday and weekend policy lookups."""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Protocol
from uuid import UUID, uuid4

from meal_ledger.adapters.holiday_api_client import HolidayApiClient
from meal_ledger.domain.errors import NotFoundError, ValidationError
from meal_ledger.domain.holidays import (
    Holiday,
    HolidaySource,
    HolidaySyncResult,
    HolidayType,
    pick_holiday,
)
from meal_ledger.domain.models import UserRecord
from meal_ledger.domain.policy import GlobalSettings, WeekendPolicy, weekend_off_reason
from meal_ledger.services.authorization import Authorizer, Permission

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {
    "name",
    "type",
    "day",
    "is_recurring",
    "recurring_month",
    "recurring_day",
    "is_active",
}


class HolidayRepository(Protocol):
    """Persistence interface for holidays."""

    def get_holiday(self, holiday_id: UUID) -> Holiday | None:
        """Return a holiday by id."""

    def list_holidays(
        self, start: date | None, end: date | None, active_only: bool
    ) -> list[Holiday]:
        """Return dated holidays in the range plus all recurring ones."""

    def find_by_date(self, day: date) -> Holiday | None:
        """Return the non-recurring holiday stored for ``day``."""

    def create_holiday(self, holiday: Holiday) -> None:
        """Insert a holiday."""

    def update_holiday(self, holiday: Holiday) -> None:
        """Replace a stored holiday."""


def default_off_reason(
    day: date, holidays: list[Holiday], settings: GlobalSettings
) -> str | None:
    """Return why meals default off on ``day``, or None."""
    holiday = pick_holiday(holidays, day)
    if holiday is not None and settings.holiday_policy.turns_off(holiday.type):
        return f"{holiday.type.value} holiday: {holiday.name}"
    weekend = weekend_off_reason(day, settings.weekend_policy)
    if weekend is not None:
        return f"weekend: {weekend}"
    return None


def map_feed_type(types: list[str]) -> HolidayType:
    """Map feed holiday types onto local holiday types."""
    if "Public" in types:
        return HolidayType.GOVERNMENT
    if "Optional" in types:
        return HolidayType.OPTIONAL
    return HolidayType.GOVERNMENT


@dataclass
class HolidayService:
    """Service for holiday reference data and default-off decisions."""

    repository: HolidayRepository
    authorizer: Authorizer
    api_client: HolidayApiClient | None = None
    country_code: str = "BD"

    def is_holiday(self, day: date) -> Holiday | None:
        """Return the active holiday on ``day``, if any."""
        return pick_holiday(self.repository.list_holidays(day, day, True), day)

    def is_weekend_off(self, day: date, policy: WeekendPolicy) -> bool:
        """Return True if the weekend policy turns ``day`` off."""
        return weekend_off_reason(day, policy) is not None

    def default_off_reason(self, day: date, settings: GlobalSettings) -> str | None:
        """Return why meals default off on ``day``, or None."""
        return default_off_reason(
            day, self.repository.list_holidays(day, day, True), settings
        )

    def holidays_between(self, start: date, end: date) -> list[Holiday]:
        """Return active holidays that may fall inside a range."""
        return self.repository.list_holidays(start, end, True)

    def list_holidays(
        self, start: date | None = None, end: date | None = None
    ) -> list[Holiday]:
        """Return holidays, including inactive ones."""
        return self.repository.list_holidays(start, end, False)

    def create_holiday(  # noqa: PLR0913
        self,
        actor: UserRecord,
        name: str,
        holiday_type: HolidayType,
        day: date | None = None,
        is_recurring: bool = False,
        recurring_month: int | None = None,
        recurring_day: int | None = None,
    ) -> Holiday:
        """Create a manual holiday."""
        self.authorizer.require(actor, Permission.MANAGE_HOLIDAYS)
        holiday = Holiday(
            id=uuid4(),
            name=name.strip(),
            type=holiday_type,
            day=None if is_recurring else day,
            is_recurring=is_recurring,
            recurring_month=recurring_month if is_recurring else None,
            recurring_day=recurring_day if is_recurring else None,
        )
        self._validate(holiday)
        if not holiday.is_recurring and self.repository.find_by_date(holiday.day):
            raise ValidationError(
                "A holiday already exists on this date",
                {"date": holiday.day.isoformat()},
            )
        self.repository.create_holiday(holiday)
        return holiday

    def update_holiday(
        self, actor: UserRecord, holiday_id: UUID, changes: dict[str, object]
    ) -> Holiday:
        """Apply field changes to a holiday."""
        self.authorizer.require(actor, Permission.MANAGE_HOLIDAYS)
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown holiday fields", {"fields": sorted(unknown)}
            )
        holiday = replace(self._get(holiday_id), **changes)
        self._validate(holiday)
        self.repository.update_holiday(holiday)
        return holiday

    def deactivate_holiday(self, actor: UserRecord, holiday_id: UUID) -> Holiday:
        """Deactivate a holiday without deleting it."""
        self.authorizer.require(actor, Permission.MANAGE_HOLIDAYS)
        holiday = replace(self._get(holiday_id), is_active=False)
        self.repository.update_holiday(holiday)
        return holiday

    async def sync_holidays(self, year: int, actor: UserRecord) -> HolidaySyncResult:
        """Pull a year of public holidays from the feed.

        Feed entries update earlier feed rows on the same date; manual rows
        on that date are left alone and counted as skipped.
        """
        self.authorizer.require(actor, Permission.SYNC_HOLIDAYS)
        if self.api_client is None:
            raise ValidationError("Holiday sync is not configured")
        entries = await self.api_client.public_holidays(year, self.country_code)
        added = updated = skipped = 0
        errors: list[str] = []
        for entry in entries:
            try:
                day = date.fromisoformat(str(entry["date"]))
                name = str(entry.get("name") or entry.get("localName") or "")
                holiday_type = map_feed_type(list(entry.get("types") or []))
            except (KeyError, TypeError, ValueError) as exc:
                errors.append(f"{entry.get('date')} ({entry.get('name')}): {exc}")
                continue
            existing = self.repository.find_by_date(day)
            if existing is None:
                self.repository.create_holiday(
                    Holiday(
                        id=uuid4(),
                        name=name,
                        type=holiday_type,
                        day=day,
                        source=HolidaySource.API,
                    )
                )
                added += 1
            elif existing.source == HolidaySource.API:
                self.repository.update_holiday(
                    replace(existing, name=name, type=holiday_type)
                )
                updated += 1
            else:
                skipped += 1
        result = HolidaySyncResult(
            year=year, added=added, updated=updated, skipped=skipped, errors=errors
        )
        logger.info(
            "Holiday sync %s: added=%s updated=%s skipped=%s errors=%s",
            year,
            added,
            updated,
            skipped,
            len(errors),
        )
        return result

    def _get(self, holiday_id: UUID) -> Holiday:
        holiday = self.repository.get_holiday(holiday_id)
        if holiday is None:
            raise NotFoundError("Holiday not found", {"holiday_id": str(holiday_id)})
        return holiday

    @staticmethod
    def _validate(holiday: Holiday) -> None:
        if not holiday.name:
            raise ValidationError("Holiday name is required")
        if holiday.is_recurring:
            if holiday.recurring_month is None or holiday.recurring_day is None:
                raise ValidationError("Recurring holidays need a month and day")
            try:
                # 2000 is a leap year, so 29 February is accepted.
                date(2000, holiday.recurring_month, holiday.recurring_day)
            except ValueError as exc:
                raise ValidationError(
                    "Invalid recurring month/day",
                    {
                        "recurring_month": holiday.recurring_month,
                        "recurring_day": holiday.recurring_day,
                    },
                ) from exc
        elif holiday.day is None:
            raise ValidationError("A date is required for non-recurring holidays")
