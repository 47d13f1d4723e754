"""Month settings and rate store."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID, uuid4

from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.errors import (
    AlreadyProcessedError,
    ConflictError,
    MonthFinalizedError,
    NoActiveRateError,
    NotFoundError,
    ValidationError,
)
from meal_ledger.domain.models import UserRecord
from meal_ledger.domain.months import MAX_RANGE_DAYS, MonthSettings, Rates, span_days
from meal_ledger.services.authorization import Authorizer, Permission
from meal_ledger.services.corrections import CorrectionService
from meal_ledger.services.locks import MonthLocks

logger = logging.getLogger(__name__)

_FORCE_UPDATE_FIELDS = {"start_date", "end_date", "lunch_rate", "dinner_rate"}
_LAST_MONTH = 12


class MonthRepository(Protocol):
    """Persistence interface for month settings."""

    def get_month(self, month_id: UUID) -> MonthSettings | None:
        """Return a month by id."""

    def find_by_period(self, year: int, month: int) -> MonthSettings | None:
        """Return the settings for a calendar month."""

    def find_containing(self, day: date) -> MonthSettings | None:
        """Return the month whose range contains ``day``."""

    def find_overlapping(self, start: date, end: date) -> list[MonthSettings]:
        """Return months whose range intersects ``[start, end]``."""

    def list_months(self) -> list[MonthSettings]:
        """Return all months, newest first."""

    def create_month(self, month: MonthSettings) -> None:
        """Insert month settings."""

    def update_month(self, month: MonthSettings) -> None:
        """Replace stored month settings."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def validate_range(start: date, end: date) -> None:
    """Reject inverted ranges and ranges longer than a billing month."""
    if start > end:
        raise ValidationError(
            "Start date must not be after end date",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    if span_days(start, end) > MAX_RANGE_DAYS:
        raise ValidationError(
            f"Date range cannot exceed {MAX_RANGE_DAYS} days",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def _validate_rates(lunch_rate: Decimal, dinner_rate: Decimal) -> None:
    if lunch_rate < 0 or dinner_rate < 0:
        raise ValidationError(
            "Rates cannot be negative",
            {"lunch_rate": str(lunch_rate), "dinner_rate": str(dinner_rate)},
        )


@dataclass
class MonthSettingsService:
    """Service for billing periods, their rates and finalization."""

    repository: MonthRepository
    authorizer: Authorizer
    corrections: CorrectionService
    month_locks: MonthLocks = field(default_factory=MonthLocks)
    clock: Callable[[], datetime] = _utc_now

    def save(  # noqa: PLR0913
        self,
        actor: UserRecord,
        year: int,
        month: int,
        start_date: date,
        end_date: date,
        lunch_rate: Decimal,
        dinner_rate: Decimal,
    ) -> MonthSettings:
        """Create or edit the settings of a calendar month."""
        self.authorizer.require(actor, Permission.MANAGE_MONTH_SETTINGS)
        if not 1 <= month <= _LAST_MONTH:
            raise ValidationError("Month must be between 1 and 12", {"month": month})
        validate_range(start_date, end_date)
        _validate_rates(lunch_rate, dinner_rate)

        existing = self.repository.find_by_period(year, month)
        if existing is not None and existing.is_finalized:
            raise MonthFinalizedError(
                "Finalized months cannot be edited", {"month_id": str(existing.id)}
            )
        self._ensure_no_overlap(start_date, end_date, existing.id if existing else None)

        if existing is None:
            settings = MonthSettings(
                id=uuid4(),
                year=year,
                month=month,
                start_date=start_date,
                end_date=end_date,
                lunch_rate=lunch_rate,
                dinner_rate=dinner_rate,
                created_by=actor.id,
            )
            self.repository.create_month(settings)
            return settings
        settings = replace(
            existing,
            start_date=start_date,
            end_date=end_date,
            lunch_rate=lunch_rate,
            dinner_rate=dinner_rate,
        )
        self.repository.update_month(settings)
        return settings

    def get(self, month_id: UUID) -> MonthSettings:
        """Return month settings or raise ``NotFoundError``."""
        settings = self.repository.get_month(month_id)
        if settings is None:
            raise NotFoundError("Month settings not found", {"month_id": str(month_id)})
        return settings

    def get_for_date(self, day: date) -> MonthSettings | None:
        """Return the month containing ``day``."""
        return self.repository.find_containing(day)

    def get_active_rate(self, day: date) -> Rates:
        """Return the rates in force on ``day``."""
        settings = self.repository.find_containing(day)
        if settings is None:
            raise NoActiveRateError(
                "No month settings cover this date", {"date": day.isoformat()}
            )
        return settings.rates

    def current(self, today: date) -> MonthSettings | None:
        """Return the month containing ``today``."""
        return self.repository.find_containing(today)

    def list_months(self) -> list[MonthSettings]:
        """Return all configured months."""
        return self.repository.list_months()

    def finalize(self, month_id: UUID, actor: UserRecord) -> MonthSettings:
        """Lock a month's data. One-way through the public API."""
        self.authorizer.require(actor, Permission.FINALIZE_MONTH)
        with self.month_locks.exclusive(month_id):
            settings = self.get(month_id)
            if settings.is_finalized:
                raise AlreadyProcessedError(
                    "Month is already finalized", {"month_id": str(month_id)}
                )
            finalized = replace(
                settings,
                is_finalized=True,
                finalized_at=self.clock(),
                finalized_by=actor.id,
            )
            self.repository.update_month(finalized)
        logger.info(
            "Month %s-%02d finalized by %s", settings.year, settings.month, actor.id
        )
        return finalized

    def force_unfinalize(
        self, month_id: UUID, reason: str, actor: UserRecord
    ) -> MonthSettings:
        """Reopen a finalized month through the audited override path."""
        self.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
        with self.month_locks.exclusive(month_id):
            settings = self.get(month_id)
            if not settings.is_finalized:
                raise AlreadyProcessedError(
                    "Month is not finalized", {"month_id": str(month_id)}
                )
            self.corrections.record(
                entity=CorrectionEntity.MONTH_SETTINGS,
                entity_id=month_id,
                action="force_unfinalize",
                reason=reason,
                performed_by=actor.id,
                before={"is_finalized": True},
                after={"is_finalized": False},
            )
            reopened = replace(
                settings, is_finalized=False, finalized_at=None, finalized_by=None
            )
            self.repository.update_month(reopened)
        return reopened

    def force_update(
        self,
        month_id: UUID,
        changes: dict[str, object],
        reason: str,
        actor: UserRecord,
    ) -> MonthSettings:
        """Edit range or rates of a month regardless of finalization."""
        self.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
        unknown = set(changes) - _FORCE_UPDATE_FIELDS
        if unknown or not changes:
            raise ValidationError(
                "Unsupported month fields", {"fields": sorted(unknown)}
            )
        with self.month_locks.exclusive(month_id):
            settings = self.get(month_id)
            updated = replace(settings, **changes)
            validate_range(updated.start_date, updated.end_date)
            _validate_rates(updated.lunch_rate, updated.dinner_rate)
            self._ensure_no_overlap(updated.start_date, updated.end_date, month_id)
            self.corrections.record(
                entity=CorrectionEntity.MONTH_SETTINGS,
                entity_id=month_id,
                action="force_update",
                reason=reason,
                performed_by=actor.id,
                before={name: str(getattr(settings, name)) for name in changes},
                after={name: str(getattr(updated, name)) for name in changes},
            )
            self.repository.update_month(updated)
        return updated

    def _ensure_no_overlap(
        self, start: date, end: date, ignore_id: UUID | None
    ) -> None:
        clashes = [
            month
            for month in self.repository.find_overlapping(start, end)
            if month.id != ignore_id
        ]
        if clashes:
            raise ConflictError(
                "Date range overlaps another month",
                {"month_ids": [str(month.id) for month in clashes]},
            )
