"""Month-end charge models."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from meal_ledger.domain.models import MealType


class ChargeStatus(StrEnum):
    """Outcome of one user's month-end charge."""

    CHARGED = "charged"
    SKIPPED_EXISTING = "skipped_existing"
    ZERO = "zero"
    FAILED = "failed"


@dataclass(frozen=True)
class UserCharge:
    """Outcome of charging one user for one meal type."""

    user_id: UUID
    meal_type: MealType
    meal_count: int
    amount: Decimal
    status: ChargeStatus
    transaction_id: UUID | None = None
    error: str | None = None


@dataclass
class MonthChargeReport:
    """Accumulated result of a month-end charge run."""

    month_id: UUID
    charges: list[UserCharge] = field(default_factory=list)
    cancelled: bool = False

    def count(self, status: ChargeStatus) -> int:
        """Number of charges with ``status``."""
        return sum(1 for charge in self.charges if charge.status == status)

    @property
    def failures(self) -> list[UserCharge]:
        """Charges that could not be posted."""
        return [
            charge for charge in self.charges if charge.status == ChargeStatus.FAILED
        ]
