"""Posting breakfast and month-end charges through the ledger."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Protocol
from uuid import UUID

import httpx

from meal_ledger.domain.breakfast import (
    Breakfast,
    BreakfastChargeReport,
    BreakfastParticipant,
    ParticipantOutcome,
)
from meal_ledger.domain.charges import ChargeStatus, MonthChargeReport, UserCharge
from meal_ledger.domain.errors import (
    AlreadyProcessedError,
    MealLedgerError,
    NotFoundError,
)
from meal_ledger.domain.ledger import (
    Reference,
    ReferenceKind,
    TransactionRecord,
    TransactionType,
)
from meal_ledger.domain.models import BalanceType, MealType, UserRecord
from meal_ledger.domain.months import MonthSettings, Rates
from meal_ledger.services.authorization import Authorizer, Permission
from meal_ledger.services.ledger import LedgerService
from meal_ledger.services.locks import KeyedLocks, MonthLocks
from meal_ledger.services.meals import MealStatusResolver, coerce_meal_type
from meal_ledger.services.months import MonthSettingsService
from meal_ledger.services.users import UserRepository

logger = logging.getLogger(__name__)


class BreakfastRepository(Protocol):
    """Persistence interface for breakfast entries."""

    def get_breakfast(self, breakfast_id: UUID) -> Breakfast | None:
        """Return a breakfast by id."""

    def find_by_date(self, day: date) -> Breakfast | None:
        """Return the breakfast entered for ``day``."""

    def list_breakfasts(self, start: date, end: date) -> list[Breakfast]:
        """Return breakfasts inside an inclusive range."""

    def create_breakfast(self, breakfast: Breakfast) -> None:
        """Insert a breakfast."""

    def update_breakfast(self, breakfast: Breakfast) -> None:
        """Replace a stored breakfast."""


@dataclass
class ChargeApplication:
    """Applies breakfast splits and month-end meal charges to balances."""

    ledger: LedgerService
    breakfasts: BreakfastRepository
    users: UserRepository
    months: MonthSettingsService
    resolver: MealStatusResolver
    authorizer: Authorizer
    month_locks: MonthLocks = field(default_factory=MonthLocks)
    breakfast_locks: KeyedLocks = field(default_factory=KeyedLocks)
    workers: int = 4

    def post_breakfast_charges(
        self, breakfast_id: UUID, actor: UserRecord
    ) -> BreakfastChargeReport:
        """Deduct every pending participant; failures do not stop the rest."""
        self.authorizer.require(actor, Permission.MANAGE_BREAKFAST)
        with self.breakfast_locks.hold(breakfast_id):
            breakfast = self._get_breakfast(breakfast_id)
            if breakfast.is_reversed:
                raise AlreadyProcessedError(
                    "Breakfast was reversed", {"breakfast_id": str(breakfast_id)}
                )
            if breakfast.is_finalized:
                raise AlreadyProcessedError(
                    "Breakfast charges were already posted",
                    {"breakfast_id": str(breakfast_id)},
                )
            reference = Reference(ReferenceKind.BREAKFAST, breakfast.id)
            participants: list[BreakfastParticipant] = []
            outcomes: list[ParticipantOutcome] = []
            for participant in breakfast.participants:
                updated, outcome = self._deduct_participant(
                    breakfast, participant, reference, actor
                )
                participants.append(updated)
                outcomes.append(outcome)
            is_finalized = all(participant.deducted for participant in participants)
            self.breakfasts.update_breakfast(
                replace(breakfast, participants=participants, is_finalized=is_finalized)
            )
        report = BreakfastChargeReport(
            breakfast_id=breakfast_id, outcomes=outcomes, is_finalized=is_finalized
        )
        if report.failures:
            logger.warning(
                "Breakfast %s: %s of %s participants not deducted",
                breakfast_id,
                len(report.failures),
                len(outcomes),
            )
        return report

    def post_month_end_charges(
        self,
        month_id: UUID,
        actor: UserRecord,
        cancel_event: threading.Event | None = None,
    ) -> MonthChargeReport:
        """Post one lunch and one dinner deduction per active user.

        Safe to re-run: users already charged for the month are skipped.
        Setting ``cancel_event`` stops the run before the next user.
        """
        self.authorizer.require(actor, Permission.RUN_CHARGES)
        month = self.months.get(month_id)
        report = MonthChargeReport(month_id=month_id)
        rate_cache: dict[date, Rates] = {}
        rate_guard = threading.Lock()

        def charge_user(user: UserRecord) -> list[UserCharge]:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                return []
            return [
                self._charge_user(month, user, meal_type, actor, rate_cache, rate_guard)
                for meal_type in MealType
            ]

        with self.month_locks.exclusive(month_id):
            users = self.users.list_users(active_only=True)
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                for charges in executor.map(charge_user, users):
                    report.charges.extend(charges)

        logger.info(
            "Month %s-%02d charges: charged=%s skipped=%s zero=%s failed=%s "
            "cancelled=%s",
            month.year,
            month.month,
            report.count(ChargeStatus.CHARGED),
            report.count(ChargeStatus.SKIPPED_EXISTING),
            report.count(ChargeStatus.ZERO),
            report.count(ChargeStatus.FAILED),
            report.cancelled,
        )
        if report.failures:
            logger.warning(
                "Month %s charge run left %s failures", month_id, len(report.failures)
            )
        return report

    def recharge_user(
        self,
        month_id: UUID,
        user_id: UUID,
        meal_type: MealType | str,
        actor: UserRecord,
    ) -> UserCharge | None:
        """Reverse and repost one user's month charge, if one was posted."""
        self.authorizer.require(actor, Permission.RUN_CHARGES)
        meal = coerce_meal_type(meal_type)
        month = self.months.get(month_id)
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": str(user_id)})
        with self.month_locks.exclusive(month_id):
            existing = self._existing_charges(month, user_id, meal.balance_type)
            if not existing:
                return None
            for charge in existing:
                self.ledger.reverse_transaction(charge.id, "meal correction", actor)
            return self._charge_user(
                month, user, meal, actor, {}, threading.Lock()
            )

    def _deduct_participant(
        self,
        breakfast: Breakfast,
        participant: BreakfastParticipant,
        reference: Reference,
        actor: UserRecord,
    ) -> tuple[BreakfastParticipant, ParticipantOutcome]:
        if not participant.deducted:
            posted = [
                record
                for record in self.ledger.find_by_reference(
                    reference, participant.user_id, BalanceType.BREAKFAST
                )
                if not record.is_reversed
            ]
            if posted:
                participant = replace(
                    participant, deducted=True, transaction_id=posted[0].id
                )
            elif participant.cost == 0:
                participant = replace(participant, deducted=True)
        if participant.deducted:
            return participant, ParticipantOutcome(
                user_id=participant.user_id,
                cost=participant.cost,
                deducted=True,
                transaction_id=participant.transaction_id,
            )
        try:
            record = self.ledger.apply_transaction(
                user_id=participant.user_id,
                balance_type=BalanceType.BREAKFAST,
                transaction_type=TransactionType.DEDUCTION,
                amount=participant.cost,
                description=f"Breakfast {breakfast.day.isoformat()}",
                performed_by=actor,
                reference=reference,
            )
        except MealLedgerError as exc:
            return participant, ParticipantOutcome(
                user_id=participant.user_id,
                cost=participant.cost,
                deducted=False,
                error=exc.message,
            )
        return (
            replace(participant, deducted=True, transaction_id=record.id),
            ParticipantOutcome(
                user_id=participant.user_id,
                cost=participant.cost,
                deducted=True,
                transaction_id=record.id,
                new_balance=record.new_balance,
            ),
        )

    def _charge_user(  # noqa: PLR0913
        self,
        month: MonthSettings,
        user: UserRecord,
        meal_type: MealType,
        actor: UserRecord,
        rate_cache: dict[date, Rates],
        rate_guard: threading.Lock,
    ) -> UserCharge:
        existing = self._existing_charges(month, user.id, meal_type.balance_type)
        if existing:
            return UserCharge(
                user_id=user.id,
                meal_type=meal_type,
                meal_count=0,
                amount=-existing[0].amount,
                status=ChargeStatus.SKIPPED_EXISTING,
                transaction_id=existing[0].id,
            )
        meal_count = 0
        amount = Decimal("0")
        try:
            statuses = self.resolver.get_calendar(
                user.id, month.start_date, month.end_date, meal_type
            )
            for status in statuses:
                if not status.is_on or status.count == 0:
                    continue
                with rate_guard:
                    rates = rate_cache.get(status.day)
                    if rates is None:
                        rates = self.months.get_active_rate(status.day)
                        rate_cache[status.day] = rates
                meal_count += status.count
                amount += rates.for_meal(meal_type) * status.count
            if amount == 0:
                return UserCharge(
                    user_id=user.id,
                    meal_type=meal_type,
                    meal_count=meal_count,
                    amount=amount,
                    status=ChargeStatus.ZERO,
                )
            record = self.ledger.apply_transaction(
                user_id=user.id,
                balance_type=meal_type.balance_type,
                transaction_type=TransactionType.DEDUCTION,
                amount=amount,
                description=(
                    f"{meal_type.value.capitalize()} charge "
                    f"{month.year}-{month.month:02d} ({meal_count} meals)"
                ),
                performed_by=actor,
                reference=Reference(ReferenceKind.MONTH_SETTINGS, month.id),
            )
        except (MealLedgerError, httpx.HTTPError) as exc:
            message = exc.message if isinstance(exc, MealLedgerError) else str(exc)
            logger.warning(
                "Month charge failed for user %s %s: %s",
                user.id,
                meal_type.value,
                message,
            )
            return UserCharge(
                user_id=user.id,
                meal_type=meal_type,
                meal_count=meal_count,
                amount=amount,
                status=ChargeStatus.FAILED,
                error=message,
            )
        return UserCharge(
            user_id=user.id,
            meal_type=meal_type,
            meal_count=meal_count,
            amount=amount,
            status=ChargeStatus.CHARGED,
            transaction_id=record.id,
        )

    def _existing_charges(
        self, month: MonthSettings, user_id: UUID, balance_type: BalanceType
    ) -> list[TransactionRecord]:
        return [
            record
            for record in self.ledger.find_by_reference(
                Reference(ReferenceKind.MONTH_SETTINGS, month.id),
                user_id,
                balance_type,
            )
            if not record.is_reversed
        ]

    def _get_breakfast(self, breakfast_id: UUID) -> Breakfast:
        breakfast = self.breakfasts.get_breakfast(breakfast_id)
        if breakfast is None:
            raise NotFoundError(
                "Breakfast not found", {"breakfast_id": str(breakfast_id)}
            )
        return breakfast
