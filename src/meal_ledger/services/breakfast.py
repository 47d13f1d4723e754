"""Breakfast cost entry and splitting."""

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from meal_ledger.domain.breakfast import (
    Breakfast,
    BreakfastChargeReport,
    BreakfastParticipant,
)
from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.errors import (
    AlreadyProcessedError,
    ConflictError,
    MealLedgerError,
    MonthFinalizedError,
    NotFoundError,
    ValidationError,
)
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Authorizer, Permission
from meal_ledger.services.charges import BreakfastRepository, ChargeApplication
from meal_ledger.services.corrections import CorrectionService
from meal_ledger.services.ledger import LedgerService
from meal_ledger.services.months import MonthSettingsService
from meal_ledger.services.settings import SettingsService
from meal_ledger.services.users import UserRepository

logger = logging.getLogger(__name__)

_WHOLE = Decimal("1")
_PAISA = Decimal("0.01")


def split_cost(total: Decimal, participant_count: int) -> list[Decimal]:
    """Split ``total`` into shares that add up to it exactly.

    Works in whole units for integral totals and in paisa otherwise. Each
    share gets the floor of the even split; the leftover units go one each
    to the first participants.
    """
    if participant_count <= 0:
        raise ValidationError("At least one participant is required")
    if total < 0:
        raise ValidationError("Total cost cannot be negative", {"total": str(total)})
    quantum = _WHOLE if total == total.to_integral_value() else _PAISA
    if total != total.quantize(_PAISA):
        raise ValidationError(
            "Total cost has more than two decimal places", {"total": str(total)}
        )
    units = int((total / quantum).to_integral_value(rounding=ROUND_HALF_UP))
    base, leftover = divmod(units, participant_count)
    return [
        (base + (1 if index < leftover else 0)) * quantum
        for index in range(participant_count)
    ]


@dataclass
class BreakfastService:
    """Service for daily breakfast entries."""

    repository: BreakfastRepository
    users: UserRepository
    charges: ChargeApplication
    ledger: LedgerService
    months: MonthSettingsService
    settings: SettingsService
    authorizer: Authorizer
    corrections: CorrectionService

    def get(self, breakfast_id: UUID) -> Breakfast:
        """Return a breakfast or raise ``NotFoundError``."""
        breakfast = self.repository.get_breakfast(breakfast_id)
        if breakfast is None:
            raise NotFoundError(
                "Breakfast not found", {"breakfast_id": str(breakfast_id)}
            )
        return breakfast

    def list_breakfasts(
        self, actor: UserRecord, start: date, end: date
    ) -> list[Breakfast]:
        """Return breakfasts in a range."""
        self.authorizer.require(actor, Permission.VIEW_BREAKFAST)
        return self.repository.list_breakfasts(start, end)

    def submit(  # noqa: PLR0913
        self,
        actor: UserRecord,
        day: date,
        total_cost: Decimal | None = None,
        participant_ids: list[UUID] | None = None,
        participant_costs: dict[UUID, Decimal] | None = None,
        description: str = "",
    ) -> tuple[Breakfast, BreakfastChargeReport | None]:
        """Record a day's breakfast and deduct it when auto-deduct is on."""
        self.authorizer.require(actor, Permission.MANAGE_BREAKFAST)
        self._ensure_month_open(actor, day)
        if self.repository.find_by_date(day) is not None:
            raise ConflictError(
                "Breakfast already entered for this date", {"date": day.isoformat()}
            )
        total, participants = self._build_participants(
            total_cost, participant_ids, participant_costs
        )
        breakfast = Breakfast(
            id=uuid4(),
            day=day,
            total_cost=total,
            participants=participants,
            submitted_by=actor.id,
            description=description,
        )
        self.repository.create_breakfast(breakfast)
        report = None
        if self.settings.current().breakfast_policy.auto_deduct:
            report = self.charges.post_breakfast_charges(breakfast.id, actor)
            breakfast = self.get(breakfast.id)
        return breakfast, report

    def update(  # noqa: PLR0913
        self,
        actor: UserRecord,
        breakfast_id: UUID,
        total_cost: Decimal | None = None,
        participant_ids: list[UUID] | None = None,
        participant_costs: dict[UUID, Decimal] | None = None,
        description: str | None = None,
    ) -> Breakfast:
        """Edit a breakfast that has not been deducted yet."""
        self.authorizer.require(actor, Permission.MANAGE_BREAKFAST)
        breakfast = self.get(breakfast_id)
        self._ensure_month_open(actor, breakfast.day)
        if breakfast.is_finalized or any(p.deducted for p in breakfast.participants):
            raise AlreadyProcessedError(
                "Deducted breakfasts must be reversed before editing",
                {"breakfast_id": str(breakfast_id)},
            )
        total, participants = self._build_participants(
            total_cost, participant_ids, participant_costs
        )
        updated = replace(
            breakfast,
            total_cost=total,
            participants=participants,
            description=breakfast.description if description is None else description,
        )
        self.repository.update_breakfast(updated)
        return updated

    def deduct(self, actor: UserRecord, breakfast_id: UUID) -> BreakfastChargeReport:
        """Post pending participant charges."""
        return self.charges.post_breakfast_charges(breakfast_id, actor)

    def reverse(self, actor: UserRecord, breakfast_id: UUID, reason: str) -> Breakfast:
        """Refund every deducted participant and mark the entry reversed."""
        self.authorizer.require(actor, Permission.MANAGE_BREAKFAST)
        if not reason.strip():
            raise ValidationError("A reason is required to reverse a breakfast")
        breakfast = self.get(breakfast_id)
        if breakfast.is_reversed:
            raise AlreadyProcessedError(
                "Breakfast is already reversed", {"breakfast_id": str(breakfast_id)}
            )
        self._ensure_month_open(actor, breakfast.day)
        reversed_entry = replace(
            breakfast,
            participants=self._refund(breakfast, reason, actor),
            is_finalized=False,
            is_reversed=True,
        )
        self.repository.update_breakfast(reversed_entry)
        return reversed_entry

    def force_update(  # noqa: PLR0913
        self,
        actor: UserRecord,
        breakfast_id: UUID,
        reason: str,
        total_cost: Decimal | None = None,
        participant_ids: list[UUID] | None = None,
        participant_costs: dict[UUID, Decimal] | None = None,
    ) -> tuple[Breakfast, BreakfastChargeReport]:
        """Replace a breakfast's split, reversing and reposting its charges."""
        self.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
        breakfast = self.get(breakfast_id)
        total, participants = self._build_participants(
            total_cost, participant_ids, participant_costs
        )
        self.corrections.record(
            entity=CorrectionEntity.BREAKFAST,
            entity_id=breakfast_id,
            action="force_update",
            reason=reason,
            performed_by=actor.id,
            before=_snapshot(breakfast.total_cost, breakfast.participants),
            after=_snapshot(total, participants),
        )
        self._refund(breakfast, reason, actor)
        self.repository.update_breakfast(
            replace(
                breakfast,
                total_cost=total,
                participants=participants,
                is_finalized=False,
                is_reversed=False,
            )
        )
        report = self.charges.post_breakfast_charges(breakfast_id, actor)
        return self.get(breakfast_id), report

    def force_unfinalize(
        self, actor: UserRecord, breakfast_id: UUID, reason: str
    ) -> Breakfast:
        """Reopen a finalized breakfast through the audited path."""
        self.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
        breakfast = self.get(breakfast_id)
        if not breakfast.is_finalized:
            raise AlreadyProcessedError(
                "Breakfast is not finalized", {"breakfast_id": str(breakfast_id)}
            )
        self.corrections.record(
            entity=CorrectionEntity.BREAKFAST,
            entity_id=breakfast_id,
            action="force_unfinalize",
            reason=reason,
            performed_by=actor.id,
            before={"is_finalized": True},
            after={"is_finalized": False},
        )
        reopened = replace(breakfast, is_finalized=False)
        self.repository.update_breakfast(reopened)
        return reopened

    def _refund(
        self, breakfast: Breakfast, reason: str, actor: UserRecord
    ) -> list[BreakfastParticipant]:
        """Reverse each deducted share, keeping refunds already made on failure.

        A share whose transaction was already reversed elsewhere counts as
        refunded. If any other reversal fails, the shares refunded so far are
        saved before the error propagates.
        """
        participants = list(breakfast.participants)
        for index, participant in enumerate(breakfast.participants):
            if participant.deducted and participant.transaction_id is not None:
                try:
                    self.ledger.reverse_transaction(
                        participant.transaction_id, reason, actor
                    )
                except AlreadyProcessedError:
                    logger.info(
                        "Breakfast %s share %s was already reversed",
                        breakfast.id,
                        participant.transaction_id,
                    )
                except MealLedgerError:
                    self.repository.update_breakfast(
                        replace(breakfast, participants=participants)
                    )
                    raise
            participants[index] = replace(
                participant, deducted=False, transaction_id=None
            )
        logger.info("Refunded breakfast %s", breakfast.id)
        return participants

    def _ensure_month_open(self, actor: UserRecord, day: date) -> None:
        month = self.months.get_for_date(day)
        if (
            month is not None
            and month.is_finalized
            and not self.authorizer.check(actor, Permission.OVERRIDE_FINALIZED)
        ):
            raise MonthFinalizedError(
                "Month is finalized", {"month_id": str(month.id)}
            )

    def _build_participants(
        self,
        total_cost: Decimal | None,
        participant_ids: list[UUID] | None,
        participant_costs: dict[UUID, Decimal] | None,
    ) -> tuple[Decimal, list[BreakfastParticipant]]:
        if participant_costs:
            if any(cost < 0 for cost in participant_costs.values()):
                raise ValidationError("Participant costs cannot be negative")
            user_ids = list(participant_costs)
            costs = [participant_costs[user_id] for user_id in user_ids]
            total = sum(costs, Decimal("0"))
            if total_cost is not None and total_cost != total:
                raise ValidationError(
                    "Participant costs do not add up to the total",
                    {"total": str(total_cost), "sum": str(total)},
                )
        else:
            if total_cost is None or not participant_ids:
                raise ValidationError(
                    "Provide a total and participants, or individual costs"
                )
            user_ids = list(participant_ids)
            if len(set(user_ids)) != len(user_ids):
                raise ValidationError("Participants must be unique")
            total = total_cost
            costs = split_cost(total_cost, len(user_ids))
        for user_id in user_ids:
            user = self.users.get_user(user_id)
            if user is None or not user.is_active:
                raise ValidationError(
                    "Participant is not an active user", {"user_id": str(user_id)}
                )
        participants = [
            BreakfastParticipant(user_id=user_id, cost=cost)
            for user_id, cost in zip(user_ids, costs, strict=True)
        ]
        return total, participants


def _snapshot(
    total: Decimal, participants: list[BreakfastParticipant]
) -> dict[str, object]:
    return {
        "total_cost": str(total),
        "participants": {str(p.user_id): str(p.cost) for p in participants},
    }
