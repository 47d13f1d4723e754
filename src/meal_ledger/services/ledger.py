"""Balance ledger service.

Every change to a stored balance goes through ``LedgerService``. A posting
writes a pending transaction row first, then the new balance, then marks
the row committed, so an interrupted posting leaves a pending row that
``reconcile`` reports instead of a silent drift.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Protocol
from uuid import UUID, uuid4

from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.errors import (
    AlreadyProcessedError,
    BalanceFrozenError,
    NotFoundError,
    ValidationError,
)
from meal_ledger.domain.ledger import (
    BalanceChange,
    ReconcileReport,
    Reference,
    ReferenceKind,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from meal_ledger.domain.models import Balance, BalanceType, UserRecord
from meal_ledger.services.authorization import Authorizer, Permission
from meal_ledger.services.corrections import CorrectionService
from meal_ledger.services.locks import KeyedLocks
from meal_ledger.services.users import UserRepository

logger = logging.getLogger(__name__)

BalanceListener = Callable[[BalanceChange], None]


class TransactionRepository(Protocol):
    """Persistence interface for ledger transactions."""

    def create_transaction(self, record: TransactionRecord) -> None:
        """Insert a transaction row."""

    def mark_committed(self, transaction_id: UUID) -> None:
        """Clear the pending marker of a transaction."""

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord | None:
        """Return a transaction by id."""

    def list_transactions(
        self,
        user_id: UUID,
        balance_type: BalanceType | None,
        limit: int | None,
    ) -> list[TransactionRecord]:
        """Return a user's transactions, newest first."""

    def find_by_reference(
        self,
        reference: Reference,
        user_id: UUID | None,
        balance_type: BalanceType | None,
    ) -> list[TransactionRecord]:
        """Return transactions pointing at ``reference``."""

    def mark_reversed(self, transaction_id: UUID, reversed_by_id: UUID) -> None:
        """Flag a transaction as reversed."""

    def mark_corrected(
        self, transaction_id: UUID, corrected_by: UUID, reason: str
    ) -> None:
        """Flag a transaction as corrected."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class LedgerService:
    """Service that owns balance mutation and the transaction log."""

    users: UserRepository
    transactions: TransactionRepository
    authorizer: Authorizer
    corrections: CorrectionService
    locks: KeyedLocks = field(default_factory=KeyedLocks)
    clock: Callable[[], datetime] = _utc_now
    listeners: list[BalanceListener] = field(default_factory=list)

    def subscribe(self, listener: BalanceListener) -> None:
        """Register a callback for committed balance changes."""
        self.listeners.append(listener)

    def apply_transaction(  # noqa: PLR0913
        self,
        user_id: UUID,
        balance_type: BalanceType | str,
        transaction_type: TransactionType | str,
        amount: Decimal | int | str,
        description: str,
        performed_by: UserRecord,
        reference: Reference | None = None,
        original_transaction_id: UUID | None = None,
    ) -> TransactionRecord:
        """Post a signed amount to one balance and append its audit row."""
        resolved_balance = _coerce_balance_type(balance_type)
        resolved_type = _coerce_transaction_type(transaction_type)
        signed_amount = _signed_amount(resolved_type, _coerce_amount(amount))

        with self.locks.hold((user_id, resolved_balance)):
            user = self.users.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found", {"user_id": str(user_id)})
            balance = user.balance(resolved_balance)
            if balance.is_frozen and not self.authorizer.check(
                performed_by, Permission.OVERRIDE_FROZEN_BALANCE
            ):
                raise BalanceFrozenError(
                    f"{resolved_balance.value} balance is frozen",
                    {
                        "user_id": str(user_id),
                        "balance_type": resolved_balance.value,
                        "frozen_reason": balance.frozen_reason,
                    },
                )
            previous_balance = balance.amount
            record = TransactionRecord(
                id=uuid4(),
                user_id=user_id,
                type=resolved_type,
                balance_type=resolved_balance,
                amount=signed_amount,
                previous_balance=previous_balance,
                new_balance=previous_balance + signed_amount,
                description=description,
                performed_by=performed_by.id,
                created_at=self.clock(),
                reference=reference,
                status=TransactionStatus.PENDING,
                original_transaction_id=original_transaction_id,
            )
            self.transactions.create_transaction(record)
            self.users.set_balance_amount(user_id, resolved_balance, record.new_balance)
            self.transactions.mark_committed(record.id)
            committed = replace(record, status=TransactionStatus.COMMITTED)

        logger.info(
            "Posted %s of %s to %s balance of user %s",
            committed.type.value,
            committed.amount,
            committed.balance_type.value,
            user_id,
        )
        self._publish(
            BalanceChange(
                user_id=user_id,
                balance_type=resolved_balance,
                previous_balance=committed.previous_balance,
                new_balance=committed.new_balance,
                transaction_id=committed.id,
            )
        )
        return committed

    def post_manual_transaction(  # noqa: PLR0913
        self,
        actor: UserRecord,
        user_id: UUID,
        balance_type: BalanceType | str,
        transaction_type: TransactionType | str,
        amount: Decimal | int | str,
        description: str,
    ) -> TransactionRecord:
        """Post a deposit or adjustment entered by a manager."""
        self.authorizer.require(actor, Permission.UPDATE_BALANCES)
        return self.apply_transaction(
            user_id=user_id,
            balance_type=balance_type,
            transaction_type=transaction_type,
            amount=amount,
            description=description,
            performed_by=actor,
        )

    def reverse_transaction(
        self, transaction_id: UUID, reason: str, performed_by: UserRecord
    ) -> TransactionRecord:
        """Post the inverse of a transaction and link it to the original."""
        with self.locks.hold(("reverse", transaction_id)):
            original = self.transactions.get_transaction(transaction_id)
            if original is None:
                raise NotFoundError(
                    "Transaction not found", {"transaction_id": str(transaction_id)}
                )
            if original.original_transaction_id is not None:
                raise AlreadyProcessedError("A reversal cannot be reversed")
            if original.is_reversed:
                raise AlreadyProcessedError(
                    "Transaction is already reversed",
                    {"reversed_by_id": str(original.reversed_by_id)},
                )
            reversal_type = (
                TransactionType.REFUND
                if original.amount < 0
                else TransactionType.ADJUSTMENT
            )
            reversal = self.apply_transaction(
                user_id=original.user_id,
                balance_type=original.balance_type,
                transaction_type=reversal_type,
                amount=-original.amount,
                description=f"Reversal: {original.description} ({reason})",
                performed_by=performed_by,
                reference=Reference(ReferenceKind.TRANSACTION, original.id),
                original_transaction_id=original.id,
            )
            self.transactions.mark_reversed(original.id, reversal.id)
        return reversal

    def reverse(
        self, actor: UserRecord, transaction_id: UUID, reason: str
    ) -> TransactionRecord:
        """Reverse a transaction on behalf of a manager."""
        self.authorizer.require(actor, Permission.REVERSE_TRANSACTIONS)
        if not reason.strip():
            raise ValidationError("A reason is required to reverse a transaction")
        return self.reverse_transaction(transaction_id, reason, actor)

    def correct_transaction(
        self,
        actor: UserRecord,
        transaction_id: UUID,
        new_amount: Decimal | int | str,
        reason: str,
    ) -> TransactionRecord:
        """Amend a transaction's amount by posting the difference."""
        self.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
        original = self.transactions.get_transaction(transaction_id)
        if original is None:
            raise NotFoundError(
                "Transaction not found", {"transaction_id": str(transaction_id)}
            )
        corrected_amount = _coerce_amount(new_amount, allow_zero=True)
        delta = corrected_amount - original.amount
        if delta == 0:
            raise ValidationError("Corrected amount equals the original amount")
        self.corrections.record(
            entity=CorrectionEntity.TRANSACTION,
            entity_id=original.id,
            action="correct_amount",
            reason=reason,
            performed_by=actor.id,
            before={"amount": str(original.amount)},
            after={"amount": str(corrected_amount)},
        )
        adjustment = self.apply_transaction(
            user_id=original.user_id,
            balance_type=original.balance_type,
            transaction_type=TransactionType.ADJUSTMENT,
            amount=delta,
            description=f"Correction of {original.id}: {reason}",
            performed_by=actor,
            reference=Reference(ReferenceKind.TRANSACTION, original.id),
        )
        self.transactions.mark_corrected(original.id, actor.id, reason)
        return adjustment

    def reconcile(
        self, user_id: UUID, balance_type: BalanceType | str
    ) -> ReconcileReport:
        """Replay a balance's transactions and compare with the stored amount."""
        resolved_balance = _coerce_balance_type(balance_type)
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": str(user_id)})
        records = self.transactions.list_transactions(
            user_id, resolved_balance, limit=None
        )
        replayed = sum(
            (r.amount for r in records if r.status == TransactionStatus.COMMITTED),
            Decimal("0"),
        )
        report = ReconcileReport(
            user_id=user_id,
            balance_type=resolved_balance,
            stored_balance=user.balance(resolved_balance).amount,
            replayed_balance=replayed,
            transaction_count=len(records),
            pending_transaction_ids=[
                r.id for r in records if r.status == TransactionStatus.PENDING
            ],
        )
        if not report.is_consistent:
            logger.warning(
                "Ledger drift for user %s %s balance: stored=%s replayed=%s pending=%s",
                user_id,
                resolved_balance.value,
                report.stored_balance,
                report.replayed_balance,
                len(report.pending_transaction_ids),
            )
        return report

    def reconcile_all(self, actor: UserRecord) -> list[ReconcileReport]:
        """Return the inconsistent balances across all users."""
        self.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
        reports = []
        for user in self.users.list_users(active_only=False):
            for balance_type in BalanceType:
                report = self.reconcile(user.id, balance_type)
                if not report.is_consistent:
                    reports.append(report)
        return reports

    def freeze(
        self,
        actor: UserRecord,
        user_id: UUID,
        balance_type: BalanceType | str,
        reason: str | None,
    ) -> Balance:
        """Freeze a balance so ordinary postings are rejected."""
        return self._set_frozen(actor, user_id, balance_type, True, reason)

    def unfreeze(
        self, actor: UserRecord, user_id: UUID, balance_type: BalanceType | str
    ) -> Balance:
        """Lift a balance freeze."""
        return self._set_frozen(actor, user_id, balance_type, False, None)

    def get_balances(self, user_id: UUID) -> dict[BalanceType, Balance]:
        """Return all balances of a user."""
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": str(user_id)})
        return {
            balance_type: user.balance(balance_type) for balance_type in BalanceType
        }

    def list_transactions(
        self,
        user_id: UUID,
        balance_type: BalanceType | str | None = None,
        limit: int = 50,
    ) -> list[TransactionRecord]:
        """Return a user's recent transactions."""
        resolved = _coerce_balance_type(balance_type) if balance_type else None
        return self.transactions.list_transactions(user_id, resolved, limit)

    def find_by_reference(
        self,
        reference: Reference,
        user_id: UUID | None = None,
        balance_type: BalanceType | None = None,
    ) -> list[TransactionRecord]:
        """Return committed transactions pointing at ``reference``."""
        return [
            record
            for record in self.transactions.find_by_reference(
                reference, user_id, balance_type
            )
            if record.status == TransactionStatus.COMMITTED
        ]

    def _set_frozen(  # noqa: PLR0913
        self,
        actor: UserRecord,
        user_id: UUID,
        balance_type: BalanceType | str,
        is_frozen: bool,
        reason: str | None,
    ) -> Balance:
        self.authorizer.require(actor, Permission.FREEZE_BALANCE)
        resolved_balance = _coerce_balance_type(balance_type)
        with self.locks.hold((user_id, resolved_balance)):
            user = self.users.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found", {"user_id": str(user_id)})
            current = user.balance(resolved_balance)
            if current.is_frozen == is_frozen:
                state = "frozen" if is_frozen else "not frozen"
                raise AlreadyProcessedError(
                    f"{resolved_balance.value} balance is already {state}"
                )
            self.users.set_balance_frozen(
                user_id, resolved_balance, is_frozen, reason if is_frozen else None
            )
        return replace(
            current,
            is_frozen=is_frozen,
            frozen_reason=reason if is_frozen else None,
        )

    def _publish(self, change: BalanceChange) -> None:
        for listener in self.listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(
                    "Balance listener failed for transaction %s", change.transaction_id
                )


def _coerce_balance_type(value: BalanceType | str) -> BalanceType:
    try:
        return BalanceType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown balance type: {value}") from exc


def _coerce_transaction_type(value: TransactionType | str) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown transaction type: {value}") from exc


def _coerce_amount(value: Decimal | int | str, allow_zero: bool = False) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value}")
    if amount == 0 and not allow_zero:
        raise ValidationError("Amount must not be zero")
    return amount


def _signed_amount(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    if transaction_type in {TransactionType.DEPOSIT, TransactionType.REFUND}:
        return abs(amount)
    if transaction_type == TransactionType.DEDUCTION:
        return -abs(amount)
    return amount
