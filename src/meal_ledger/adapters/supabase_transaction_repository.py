"""Supabase repository for ledger transactions."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import optional_str, optional_uuid, to_decimal
from meal_ledger.domain.ledger import (
    Reference,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from meal_ledger.domain.models import BalanceType
from meal_ledger.services.ledger import TransactionRepository


@dataclass
class SupabaseTransactionRepository(TransactionRepository):
    """Supabase implementation for the append-only transaction log.

    The reference is stored as ``reference_kind`` and ``reference_id``.
    """

    client: Client

    def create_transaction(self, record: TransactionRecord) -> None:
        """Insert a transaction row."""
        response = (
            self.client.table("transactions")
            .insert(
                {
                    "id": str(record.id),
                    "user_id": str(record.user_id),
                    "type": record.type.value,
                    "balance_type": record.balance_type.value,
                    "amount": str(record.amount),
                    "previous_balance": str(record.previous_balance),
                    "new_balance": str(record.new_balance),
                    "description": record.description,
                    "performed_by": str(record.performed_by),
                    "created_at": record.created_at.isoformat(),
                    "reference_kind": (
                        record.reference.kind.value if record.reference else None
                    ),
                    "reference_id": (
                        str(record.reference.id) if record.reference else None
                    ),
                    "status": record.status.value,
                    "original_transaction_id": optional_str(
                        record.original_transaction_id
                    ),
                    "is_reversed": record.is_reversed,
                    "is_corrected": record.is_corrected,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create transaction")

    def mark_committed(self, transaction_id: UUID) -> None:
        """Clear the pending marker of a transaction."""
        self.client.table("transactions").update(
            {"status": TransactionStatus.COMMITTED.value}
        ).eq("id", str(transaction_id)).execute()

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord | None:
        """Return a transaction by id."""
        response = (
            self.client.table("transactions")
            .select("*")
            .eq("id", str(transaction_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_transaction(response.data[0])

    def list_transactions(
        self,
        user_id: UUID,
        balance_type: BalanceType | None,
        limit: int | None,
    ) -> list[TransactionRecord]:
        """Return a user's transactions, newest first."""
        query = (
            self.client.table("transactions").select("*").eq("user_id", str(user_id))
        )
        if balance_type is not None:
            query = query.eq("balance_type", balance_type.value)
        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        return [_parse_transaction(row) for row in response.data or []]

    def find_by_reference(
        self,
        reference: Reference,
        user_id: UUID | None,
        balance_type: BalanceType | None,
    ) -> list[TransactionRecord]:
        """Return transactions pointing at ``reference``."""
        query = (
            self.client.table("transactions")
            .select("*")
            .eq("reference_kind", reference.kind.value)
            .eq("reference_id", str(reference.id))
        )
        if user_id is not None:
            query = query.eq("user_id", str(user_id))
        if balance_type is not None:
            query = query.eq("balance_type", balance_type.value)
        response = query.order("created_at").execute()
        return [_parse_transaction(row) for row in response.data or []]

    def mark_reversed(self, transaction_id: UUID, reversed_by_id: UUID) -> None:
        """Flag a transaction as reversed."""
        self.client.table("transactions").update(
            {"is_reversed": True, "reversed_by_id": str(reversed_by_id)}
        ).eq("id", str(transaction_id)).execute()

    def mark_corrected(
        self, transaction_id: UUID, corrected_by: UUID, reason: str
    ) -> None:
        """Flag a transaction as corrected."""
        self.client.table("transactions").update(
            {
                "is_corrected": True,
                "corrected_by": str(corrected_by),
                "correction_reason": reason,
            }
        ).eq("id", str(transaction_id)).execute()


def _parse_transaction(row: dict[str, object]) -> TransactionRecord:
    return TransactionRecord(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        type=TransactionType(row["type"]),
        balance_type=BalanceType(row["balance_type"]),
        amount=to_decimal(row.get("amount")),
        previous_balance=to_decimal(row.get("previous_balance")),
        new_balance=to_decimal(row.get("new_balance")),
        description=str(row.get("description") or ""),
        performed_by=UUID(str(row["performed_by"])),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        reference=Reference.from_dict(
            {"kind": row.get("reference_kind"), "id": row.get("reference_id")}
        ),
        status=TransactionStatus(row.get("status") or TransactionStatus.COMMITTED),
        original_transaction_id=optional_uuid(row.get("original_transaction_id")),
        is_reversed=bool(row.get("is_reversed", False)),
        reversed_by_id=optional_uuid(row.get("reversed_by_id")),
        is_corrected=bool(row.get("is_corrected", False)),
        corrected_by=optional_uuid(row.get("corrected_by")),
        correction_reason=row.get("correction_reason"),
    )
