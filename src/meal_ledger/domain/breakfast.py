"""Breakfast cost models."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class BreakfastParticipant:
    """One participant's share of a breakfast."""

    user_id: UUID
    cost: Decimal
    deducted: bool = False
    transaction_id: UUID | None = None


@dataclass(frozen=True)
class Breakfast:
    """Daily breakfast cost entry."""

    id: UUID
    day: date
    total_cost: Decimal
    participants: list[BreakfastParticipant]
    submitted_by: UUID
    description: str = ""
    is_finalized: bool = False
    is_reversed: bool = False

    @property
    def pending_participants(self) -> list[BreakfastParticipant]:
        """Participants not yet charged."""
        return [p for p in self.participants if not p.deducted]


@dataclass(frozen=True)
class ParticipantOutcome:
    """Result of posting one participant's charge."""

    user_id: UUID
    cost: Decimal
    deducted: bool
    transaction_id: UUID | None = None
    new_balance: Decimal | None = None
    error: str | None = None


@dataclass(frozen=True)
class BreakfastChargeReport:
    """Result of posting a breakfast's charges."""

    breakfast_id: UUID
    outcomes: list[ParticipantOutcome] = field(default_factory=list)
    is_finalized: bool = False

    @property
    def failures(self) -> list[ParticipantOutcome]:
        """Outcomes that did not deduct."""
        return [outcome for outcome in self.outcomes if not outcome.deducted]
