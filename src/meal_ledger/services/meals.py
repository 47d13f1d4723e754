"""Effective meal status resolution and toggling.

A cell ``(user, day, meal)`` resolves in three layers: a matching rule
override wins, then the user's explicit meal record, then the policy
default (holidays, weekend rules, default status). Overrides never touch
meal records, so removing one lets the earlier state show through again.
"""

import logging
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from typing import Protocol, TypeVar
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import httpx

from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.errors import (
    ConflictError,
    CutoffPassedError,
    MealLedgerError,
    MonthFinalizedError,
    NotFoundError,
    OverrideGovernedError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from meal_ledger.domain.holidays import Holiday
from meal_ledger.domain.meals import (
    EffectiveStatus,
    MealRecord,
    StatusSource,
    ToggleDecision,
    ToggleOutcome,
)
from meal_ledger.domain.models import MealType, UserRecord
from meal_ledger.domain.months import MonthSettings, date_range
from meal_ledger.domain.overrides import (
    OverrideAction,
    RuleOverride,
    matching_overrides,
)
from meal_ledger.domain.policy import GlobalSettings
from meal_ledger.services.authorization import Authorizer, Permission
from meal_ledger.services.corrections import CorrectionService
from meal_ledger.services.holidays import HolidayService, default_off_reason
from meal_ledger.services.locks import MonthLocks
from meal_ledger.services.months import MonthSettingsService, validate_range
from meal_ledger.services.overrides import OverrideService
from meal_ledger.services.settings import SettingsService
from meal_ledger.services.users import UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

Recharger = Callable[[UUID, UUID, MealType, UserRecord], object]


class MealRepository(Protocol):
    """Persistence interface for explicit meal records."""

    def get_meal(
        self, user_id: UUID, day: date, meal_type: MealType
    ) -> MealRecord | None:
        """Return the record for a cell, if any."""

    def list_meals(
        self,
        user_id: UUID | None,
        start: date,
        end: date,
        meal_type: MealType | None,
    ) -> list[MealRecord]:
        """Return records inside an inclusive date range."""

    def upsert_meal(self, record: MealRecord) -> MealRecord:
        """Insert or replace the record for its cell."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def coerce_meal_type(value: MealType | str) -> MealType:
    """Parse a meal type or raise ``ValidationError``."""
    try:
        return MealType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown meal type: {value}") from exc


def resolve_status(  # noqa: PLR0913
    user_id: UUID,
    day: date,
    meal_type: MealType,
    overrides: list[RuleOverride],
    record: MealRecord | None,
    holidays: list[Holiday],
    settings: GlobalSettings,
) -> EffectiveStatus:
    """Combine the three layers into one effective status."""
    if overrides:
        winner = overrides[0]
        is_on = winner.action == OverrideAction.FORCE_ON
        count = 0
        if is_on:
            count = record.count if record and record.is_on and record.count else 1
        return EffectiveStatus(
            user_id=user_id,
            day=day,
            meal_type=meal_type,
            is_on=is_on,
            count=count,
            source=StatusSource.OVERRIDE,
            reason=winner.reason or f"override by {winner.created_by_role or 'system'}",
            togglable=False,
            edit_restriction=OverrideGovernedError.state,
            override_id=winner.id,
            meal_id=record.id if record else None,
        )
    if record is not None:
        return EffectiveStatus(
            user_id=user_id,
            day=day,
            meal_type=meal_type,
            is_on=record.is_on,
            count=record.count if record.is_on else 0,
            source=StatusSource.MANUAL,
            reason="manual setting",
            meal_id=record.id,
        )
    off_reason = default_off_reason(day, holidays, settings)
    default_on = settings.default_meal_status.for_meal(meal_type)
    is_on = off_reason is None and default_on
    if off_reason is None:
        off_reason = "default on" if default_on else "default off"
    return EffectiveStatus(
        user_id=user_id,
        day=day,
        meal_type=meal_type,
        is_on=is_on,
        count=1 if is_on else 0,
        source=StatusSource.DEFAULT,
        reason=off_reason,
    )


@dataclass
class MealStatusResolver:
    """Resolves effective meal status and applies toggles."""

    meals: MealRepository
    users: UserRepository
    overrides: OverrideService
    holidays: HolidayService
    months: MonthSettingsService
    settings: SettingsService
    authorizer: Authorizer
    corrections: CorrectionService
    month_locks: MonthLocks = field(default_factory=MonthLocks)
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("Asia/Dhaka"))
    clock: Callable[[], datetime] = _utc_now
    read_retry_attempts: int = 2
    bulk_workers: int = 4
    recharger: Recharger | None = None

    def local_now(self) -> datetime:
        """Return the current time in the configured zone."""
        return self.clock().astimezone(self.timezone)

    def get_effective_status(
        self,
        user_id: UUID,
        day: date,
        meal_type: MealType | str,
        viewer: UserRecord | None = None,
    ) -> EffectiveStatus:
        """Resolve one cell without writing anything.

        With a ``viewer``, ``togglable`` and ``edit_restriction`` report
        whether that user may change the cell right now.
        """
        meal = coerce_meal_type(meal_type)
        settings = self.settings.current()

        def load() -> EffectiveStatus:
            return resolve_status(
                user_id,
                day,
                meal,
                self.overrides.find_matching_overrides(user_id, day, meal),
                self.meals.get_meal(user_id, day, meal),
                self.holidays.holidays_between(day, day),
                settings,
            )

        status = self._read(load, action="get_effective_status")
        if viewer is None:
            return status
        return self._with_edit_permission(viewer, status)

    def get_calendar(
        self,
        user_id: UUID,
        start: date,
        end: date,
        meal_type: MealType | str,
        viewer: UserRecord | None = None,
    ) -> list[EffectiveStatus]:
        """Resolve every day of a range with one load per layer."""
        meal = coerce_meal_type(meal_type)
        validate_range(start, end)
        settings = self.settings.current()

        def load() -> list[EffectiveStatus]:
            records = {
                record.day: record
                for record in self.meals.list_meals(user_id, start, end, meal)
            }
            candidates = self.overrides.candidates_for(user_id, meal)
            holidays = self.holidays.holidays_between(start, end)
            now = self.clock()
            return [
                resolve_status(
                    user_id,
                    day,
                    meal,
                    matching_overrides(candidates, user_id, day, meal, now),
                    records.get(day),
                    holidays,
                    settings,
                )
                for day in date_range(start, end)
            ]

        statuses = self._read(load, action="get_calendar")
        if viewer is None:
            return statuses
        return [self._with_edit_permission(viewer, status) for status in statuses]

    def check_toggle(
        self,
        actor: UserRecord,
        target_user_id: UUID,
        day: date,
        meal_type: MealType | str,
    ) -> ToggleDecision:
        """Decide whether ``actor`` may change a cell right now."""
        meal = coerce_meal_type(meal_type)
        self._require_target(actor, target_user_id)

        month = self.months.get_for_date(day)
        force = False
        if month is not None and month.is_finalized:
            if not self.authorizer.check(actor, Permission.OVERRIDE_FINALIZED):
                raise MonthFinalizedError(
                    "Month is finalized", {"month_id": str(month.id)}
                )
            force = True

        self._check_timing(actor, day, meal)

        governing = self.overrides.find_matching_overrides(target_user_id, day, meal)
        if governing:
            raise OverrideGovernedError(
                "Meal is governed by an override",
                {"override_id": str(governing[0].id), "reason": governing[0].reason},
            )
        return ToggleDecision(
            user_id=target_user_id, day=day, meal_type=meal, month=month, force=force
        )

    def toggle(  # noqa: PLR0913
        self,
        actor: UserRecord,
        target_user_id: UUID,
        day: date,
        meal_type: MealType | str,
        is_on: bool,
        count: int | None = None,
        reason: str | None = None,
    ) -> MealRecord:
        """Set a cell on or off."""
        _validate_count(count)
        decision = self.check_toggle(actor, target_user_id, day, meal_type)
        if decision.force:
            return self.force_edit(
                actor,
                target_user_id,
                day,
                decision.meal_type,
                is_on,
                count,
                reason or "edit of finalized month",
            )
        with self._month_guard(decision.month):
            return self._write(
                actor, target_user_id, day, decision.meal_type, is_on, count
            )

    def bulk_toggle(  # noqa: PLR0913
        self,
        actor: UserRecord,
        target_user_id: UUID,
        start: date,
        end: date,
        meal_type: MealType | str,
        is_on: bool,
    ) -> list[ToggleOutcome]:
        """Toggle a range; every date succeeds or fails on its own."""
        meal = coerce_meal_type(meal_type)
        validate_range(start, end)
        self._require_target(actor, target_user_id)

        def toggle_one(day: date) -> ToggleOutcome:
            try:
                record = self.toggle(
                    actor,
                    target_user_id,
                    day,
                    meal,
                    is_on,
                    reason="bulk edit of finalized month",
                )
            except MealLedgerError as exc:
                return ToggleOutcome(
                    day=day,
                    applied=False,
                    reason=exc.message,
                    state=getattr(exc, "state", exc.code),
                )
            return ToggleOutcome(day=day, applied=True, record=record)

        with ThreadPoolExecutor(max_workers=self.bulk_workers) as executor:
            return list(executor.map(toggle_one, date_range(start, end)))

    def set_count(  # noqa: PLR0913
        self,
        actor: UserRecord,
        user_id: UUID,
        day: date,
        meal_type: MealType | str,
        count: int,
        notes: str = "",
    ) -> MealRecord:
        """Set a meal count, e.g. to include guests."""
        meal = coerce_meal_type(meal_type)
        self.authorizer.require(actor, Permission.MANAGE_ALL_MEALS)
        _validate_count(count)
        self._get_user(user_id)
        month = self.months.get_for_date(day)
        if month is not None and month.is_finalized:
            if not self.authorizer.check(actor, Permission.OVERRIDE_FINALIZED):
                raise MonthFinalizedError(
                    "Month is finalized", {"month_id": str(month.id)}
                )
            return self.force_edit(
                actor, user_id, day, meal, count > 0, count, notes or "count change"
            )
        with self._month_guard(month):
            return self._write(actor, user_id, day, meal, count > 0, count, notes)

    def force_edit(  # noqa: PLR0913
        self,
        actor: UserRecord,
        user_id: UUID,
        day: date,
        meal_type: MealType | str,
        is_on: bool,
        count: int | None,
        reason: str,
    ) -> MealRecord:
        """Edit a cell in a finalized month and re-run its month charge."""
        meal = coerce_meal_type(meal_type)
        self.authorizer.require(actor, Permission.OVERRIDE_FINALIZED)
        _validate_count(count)
        self._get_user(user_id)
        existing = self.meals.get_meal(user_id, day, meal)
        record_id = existing.id if existing else uuid4()
        before = (
            {"is_on": existing.is_on, "count": existing.count} if existing else None
        )
        new_count = (count or 1) if is_on else 0
        self.corrections.record(
            entity=CorrectionEntity.MEAL,
            entity_id=record_id,
            action="force_edit",
            reason=reason,
            performed_by=actor.id,
            before=before,
            after={
                "user_id": str(user_id),
                "date": day.isoformat(),
                "meal_type": meal.value,
                "is_on": is_on,
                "count": new_count,
            },
        )
        record = self._write(
            actor, user_id, day, meal, is_on, count, recheck=False, record_id=record_id
        )
        month = self.months.get_for_date(day)
        if month is not None and month.is_finalized and self.recharger is not None:
            self.recharger(month.id, user_id, meal, actor)
        return record

    def _write(  # noqa: PLR0913
        self,
        actor: UserRecord,
        user_id: UUID,
        day: date,
        meal_type: MealType,
        is_on: bool,
        count: int | None,
        notes: str | None = None,
        recheck: bool = True,
        record_id: UUID | None = None,
    ) -> MealRecord:
        if recheck:
            month = self.months.get_for_date(day)
            if month is not None and month.is_finalized:
                raise ConflictError(
                    "Month was finalized while the change was in flight",
                    {"month_id": str(month.id)},
                )
        existing = self.meals.get_meal(user_id, day, meal_type)
        record = MealRecord(
            id=existing.id if existing else (record_id or uuid4()),
            user_id=user_id,
            day=day,
            meal_type=meal_type,
            is_on=is_on,
            count=(count or 1) if is_on else 0,
            is_manually_set=True,
            modified_by=actor.id,
            notes=notes if notes is not None else (existing.notes if existing else ""),
            updated_at=self.clock(),
        )
        return self.meals.upsert_meal(record)

    def _with_edit_permission(
        self, viewer: UserRecord, status: EffectiveStatus
    ) -> EffectiveStatus:
        if status.source == StatusSource.OVERRIDE:
            return status
        try:
            self.check_toggle(viewer, status.user_id, status.day, status.meal_type)
        except StateError as exc:
            return replace(status, togglable=False, edit_restriction=exc.state)
        except (PermissionDeniedError, ValidationError) as exc:
            return replace(status, togglable=False, edit_restriction=exc.code)
        return status

    def _require_target(self, actor: UserRecord, target_user_id: UUID) -> None:
        if target_user_id == actor.id:
            self.authorizer.require(actor, Permission.TOGGLE_OWN_MEALS)
        else:
            self.authorizer.require(actor, Permission.MANAGE_ALL_MEALS)
        target = self._get_user(target_user_id)
        if not target.is_active:
            raise ValidationError(
                "User is not active", {"user_id": str(target_user_id)}
            )

    def _get_user(self, user_id: UUID) -> UserRecord:
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": str(user_id)})
        return user

    def _check_timing(self, actor: UserRecord, day: date, meal_type: MealType) -> None:
        now = self.local_now()
        today = now.date()
        if not self.authorizer.check(actor, Permission.MANAGE_ALL_MEALS):
            cutoff = self.settings.current().cutoff_times.for_meal(meal_type)
            if day < today or (day == today and now.hour >= cutoff):
                raise CutoffPassedError(
                    f"{meal_type.value} cutoff has passed",
                    {"date": day.isoformat(), "cutoff_hour": cutoff},
                )
            return
        if day >= today or self.authorizer.check(actor, Permission.OVERRIDE_FINALIZED):
            return
        current = self.months.current(today)
        if current is None or not current.contains(day):
            raise CutoffPassedError(
                "Past dates can only be edited inside the current month",
                {"date": day.isoformat()},
            )

    @contextmanager
    def _month_guard(self, month: MonthSettings | None) -> Iterator[None]:
        if month is None:
            yield
            return
        with self.month_locks.shared(month.id):
            yield

    def _read(self, func: Callable[[], T], *, action: str) -> T:
        attempt = 0
        while True:
            try:
                return func()
            except httpx.TransportError as exc:
                attempt += 1
                logger.warning(
                    "Resolver %s failed (attempt %s/%s): %s",
                    action,
                    attempt,
                    self.read_retry_attempts + 1,
                    exc,
                )
                if attempt > self.read_retry_attempts:
                    raise


def _validate_count(count: int | None) -> None:
    if count is not None and count < 0:
        raise ValidationError("Meal count cannot be negative", {"count": count})
