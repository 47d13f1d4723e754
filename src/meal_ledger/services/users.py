"""User-related business logic."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from meal_ledger.domain.errors import NotFoundError
from meal_ledger.domain.models import BalanceType, Role, UserRecord


class UserRepository(Protocol):
    """Persistence interface for users and their balances."""

    def get_user(self, user_id: UUID) -> UserRecord | None:
        """Return the user for an id, if present."""

    def list_users(self, active_only: bool) -> list[UserRecord]:
        """Return users, optionally only active ones."""

    def create_user(
        self, name: str, role: Role, permissions: frozenset[str]
    ) -> UserRecord:
        """Create and return a new user with empty balances."""

    def set_balance_amount(
        self, user_id: UUID, balance_type: BalanceType, amount: Decimal
    ) -> None:
        """Write the stored amount of one balance."""

    def set_balance_frozen(
        self,
        user_id: UUID,
        balance_type: BalanceType,
        is_frozen: bool,
        reason: str | None,
    ) -> None:
        """Write the freeze state of one balance."""


@dataclass
class UserService:
    """Application service for user lookups."""

    repository: UserRepository

    def get_user(self, user_id: UUID) -> UserRecord:
        """Return a user or raise ``NotFoundError``."""
        user = self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": str(user_id)})
        return user

    def find_user(self, user_id: UUID) -> UserRecord | None:
        """Return a user if present."""
        return self.repository.get_user(user_id)

    def list_active_users(self) -> list[UserRecord]:
        """Return active users."""
        return self.repository.list_users(active_only=True)
