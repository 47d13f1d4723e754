"""Ledger domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from meal_ledger.domain.models import BalanceType


class TransactionType(StrEnum):
    """Kinds of ledger postings."""

    DEPOSIT = "deposit"
    DEDUCTION = "deduction"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"


class TransactionStatus(StrEnum):
    """Write state of a transaction row."""

    PENDING = "pending"
    COMMITTED = "committed"


class ReferenceKind(StrEnum):
    """Entities a transaction can point back to."""

    BREAKFAST = "breakfast"
    MEAL = "meal"
    MONTH_SETTINGS = "month_settings"
    TRANSACTION = "transaction"


@dataclass(frozen=True)
class Reference:
    """Typed pointer from a transaction to the entity that caused it."""

    kind: ReferenceKind
    id: UUID

    def to_dict(self) -> dict[str, str]:
        """Serialize the reference."""
        return {"kind": self.kind.value, "id": str(self.id)}

    @classmethod
    def from_dict(cls, raw: dict[str, object] | None) -> "Reference | None":
        """Parse a serialized reference."""
        if not raw or not raw.get("kind") or not raw.get("id"):
            return None
        return cls(kind=ReferenceKind(str(raw["kind"])), id=UUID(str(raw["id"])))


@dataclass(frozen=True)
class TransactionRecord:
    """Append-only ledger row."""

    id: UUID
    user_id: UUID
    type: TransactionType
    balance_type: BalanceType
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    description: str
    performed_by: UUID
    created_at: datetime
    reference: Reference | None = None
    status: TransactionStatus = TransactionStatus.COMMITTED
    original_transaction_id: UUID | None = None
    is_reversed: bool = False
    reversed_by_id: UUID | None = None
    is_corrected: bool = False
    corrected_by: UUID | None = None
    correction_reason: str | None = None


@dataclass(frozen=True)
class BalanceChange:
    """Event emitted after a committed posting."""

    user_id: UUID
    balance_type: BalanceType
    previous_balance: Decimal
    new_balance: Decimal
    transaction_id: UUID


@dataclass(frozen=True)
class ReconcileReport:
    """Result of replaying the transaction log for one balance."""

    user_id: UUID
    balance_type: BalanceType
    stored_balance: Decimal
    replayed_balance: Decimal
    transaction_count: int
    pending_transaction_ids: list[UUID] = field(default_factory=list)

    @property
    def drift(self) -> Decimal:
        """Difference between the replayed and stored balance."""
        return self.replayed_balance - self.stored_balance

    @property
    def is_consistent(self) -> bool:
        """True when there is no drift and no pending rows."""
        return self.drift == 0 and not self.pending_transaction_ids
