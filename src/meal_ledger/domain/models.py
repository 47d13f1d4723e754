"""Core domain models shared across the meal ledger."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from uuid import UUID


class Role(StrEnum):
    """User roles, lowest to highest."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @property
    def level(self) -> int:
        """Return the rank of the role in the hierarchy."""
        return _ROLE_ORDER.index(self)

    def at_least(self, other: "Role") -> bool:
        """Return True if this role ranks at or above ``other``."""
        return self.level >= other.level


_ROLE_ORDER = [Role.USER, Role.MANAGER, Role.ADMIN, Role.SUPERADMIN]


class BalanceType(StrEnum):
    """The three per-user running balances."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class MealType(StrEnum):
    """Toggleable meals."""

    LUNCH = "lunch"
    DINNER = "dinner"

    @property
    def balance_type(self) -> BalanceType:
        """Return the balance charged for this meal."""
        return BalanceType(self.value)


@dataclass(frozen=True)
class Balance:
    """Current amount and freeze state of one balance."""

    amount: Decimal = Decimal("0")
    is_frozen: bool = False
    frozen_reason: str | None = None


@dataclass(frozen=True)
class UserRecord:
    """Represents a user stored in the database."""

    id: UUID
    name: str
    role: Role = Role.USER
    is_active: bool = True
    permissions: frozenset[str] = frozenset()
    balances: dict[BalanceType, Balance] = field(
        default_factory=lambda: {balance: Balance() for balance in BalanceType}
    )

    def balance(self, balance_type: BalanceType) -> Balance:
        """Return the balance for a type, defaulting to an empty one."""
        return self.balances.get(balance_type, Balance())
