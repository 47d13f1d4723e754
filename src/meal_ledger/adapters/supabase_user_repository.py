"""Supabase-backed user repository."""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from supabase import Client

from meal_ledger.adapters.supabase_rows import to_decimal
from meal_ledger.domain.models import Balance, BalanceType, Role, UserRecord
from meal_ledger.services.users import UserRepository


@dataclass
class SupabaseUserRepository(UserRepository):
    """Supabase implementation for users and balances.

    Each balance type is stored as ``<type>_balance``, ``<type>_frozen`` and
    ``<type>_frozen_reason`` columns on the user row.
    """

    client: Client

    def get_user(self, user_id: UUID) -> UserRecord | None:
        """Return the user for an id, if present."""
        response = (
            self.client.table("users")
            .select("*")
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )
        if response.data:
            return _parse_user(response.data[0])
        return None

    def list_users(self, active_only: bool) -> list[UserRecord]:
        """Return users ordered by name."""
        query = self.client.table("users").select("*")
        if active_only:
            query = query.eq("is_active", True)
        response = query.order("name").execute()
        return [_parse_user(row) for row in response.data or []]

    def create_user(
        self, name: str, role: Role, permissions: frozenset[str]
    ) -> UserRecord:
        """Create a new user row and return it."""
        response = (
            self.client.table("users")
            .insert(
                {
                    "name": name,
                    "role": role.value,
                    "is_active": True,
                    "permissions": sorted(permissions),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create user in Supabase")
        return _parse_user(response.data[0])

    def set_balance_amount(
        self, user_id: UUID, balance_type: BalanceType, amount: Decimal
    ) -> None:
        """Write the stored amount of one balance."""
        self.client.table("users").update(
            {f"{balance_type.value}_balance": str(amount)}
        ).eq("id", str(user_id)).execute()

    def set_balance_frozen(
        self,
        user_id: UUID,
        balance_type: BalanceType,
        is_frozen: bool,
        reason: str | None,
    ) -> None:
        """Write the freeze state of one balance."""
        self.client.table("users").update(
            {
                f"{balance_type.value}_frozen": is_frozen,
                f"{balance_type.value}_frozen_reason": reason,
            }
        ).eq("id", str(user_id)).execute()


def _parse_user(row: dict[str, object]) -> UserRecord:
    return UserRecord(
        id=UUID(str(row["id"])),
        name=str(row.get("name") or ""),
        role=Role(row.get("role") or Role.USER),
        is_active=bool(row.get("is_active", True)),
        permissions=frozenset(row.get("permissions") or []),
        balances={
            balance_type: Balance(
                amount=to_decimal(row.get(f"{balance_type.value}_balance")),
                is_frozen=bool(row.get(f"{balance_type.value}_frozen", False)),
                frozen_reason=row.get(f"{balance_type.value}_frozen_reason"),
            )
            for balance_type in BalanceType
        },
    )
