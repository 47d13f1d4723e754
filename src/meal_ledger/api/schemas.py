"""Pydantic request models for the HTTP API."""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from meal_ledger.domain.holidays import HolidayType
from meal_ledger.domain.ledger import TransactionType
from meal_ledger.domain.models import BalanceType, MealType
from meal_ledger.domain.overrides import (
    DateType,
    OverrideAction,
    OverrideDraft,
    OverrideMealType,
    RecurringPattern,
    TargetType,
)


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ToggleRequest(_Request):
    """Turn one meal on or off."""

    user_id: UUID | None = None
    day: dt.date = Field(alias="date")
    meal_type: MealType
    is_on: bool
    count: int | None = None
    reason: str | None = None


class BulkToggleRequest(_Request):
    """Turn a meal on or off across a date range."""

    user_id: UUID | None = None
    start_date: dt.date
    end_date: dt.date
    meal_type: MealType
    is_on: bool


class CountRequest(_Request):
    """Set the number of meals taken (guests included)."""

    user_id: UUID | None = None
    day: dt.date = Field(alias="date")
    meal_type: MealType
    count: int
    notes: str = ""


class ForceEditRequest(_Request):
    """Edit a meal regardless of cutoff and finalization."""

    user_id: UUID
    day: dt.date = Field(alias="date")
    meal_type: MealType
    is_on: bool
    count: int | None = None
    reason: str


class TransactionRequest(_Request):
    """Deposit or adjust a balance."""

    user_id: UUID
    balance_type: BalanceType
    transaction_type: TransactionType
    amount: Decimal
    description: str = ""


class ReasonRequest(_Request):
    reason: str


class FreezeRequest(_Request):
    user_id: UUID
    balance_type: BalanceType
    reason: str | None = None


class UnfreezeRequest(_Request):
    user_id: UUID
    balance_type: BalanceType


class CorrectTransactionRequest(_Request):
    new_amount: Decimal
    reason: str


class BreakfastRequest(_Request):
    """Breakfast entry: either a total split evenly, or individual costs."""

    day: dt.date = Field(alias="date")
    total_cost: Decimal | None = None
    participant_ids: list[UUID] | None = None
    participant_costs: dict[UUID, Decimal] | None = None
    description: str = ""


class BreakfastUpdateRequest(_Request):
    total_cost: Decimal | None = None
    participant_ids: list[UUID] | None = None
    participant_costs: dict[UUID, Decimal] | None = None
    description: str | None = None


class BreakfastForceUpdateRequest(_Request):
    reason: str
    total_cost: Decimal | None = None
    participant_ids: list[UUID] | None = None
    participant_costs: dict[UUID, Decimal] | None = None


class MonthRequest(_Request):
    """Billing period and its rates."""

    year: int
    month: int
    start_date: dt.date
    end_date: dt.date
    lunch_rate: Decimal
    dinner_rate: Decimal


class MonthForceUpdateRequest(_Request):
    reason: str
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    lunch_rate: Decimal | None = None
    dinner_rate: Decimal | None = None

    def changes(self) -> dict[str, object]:
        """Return only the fields the caller set."""
        return self.model_dump(exclude={"reason"}, exclude_none=True)


class OverrideRequest(_Request):
    """Fields of a rule override."""

    target_type: TargetType
    date_type: DateType
    start_date: dt.date
    meal_type: OverrideMealType
    action: OverrideAction
    target_user_id: UUID | None = None
    end_date: dt.date | None = None
    recurring_pattern: RecurringPattern | None = None
    recurring_days: list[int] = Field(default_factory=list)
    reason: str = ""
    expires_at: dt.datetime | None = None

    def to_draft(self) -> OverrideDraft:
        """Convert to the service-level draft."""
        return OverrideDraft(
            target_type=self.target_type,
            date_type=self.date_type,
            start_date=self.start_date,
            meal_type=self.meal_type,
            action=self.action,
            target_user_id=self.target_user_id,
            end_date=self.end_date,
            recurring_pattern=self.recurring_pattern,
            recurring_days=tuple(self.recurring_days),
            reason=self.reason,
            expires_at=self.expires_at,
        )


class HolidayRequest(_Request):
    name: str
    type: HolidayType = HolidayType.GOVERNMENT
    day: dt.date | None = Field(default=None, alias="date")
    is_recurring: bool = False
    recurring_month: int | None = None
    recurring_day: int | None = None


class HolidayUpdateRequest(_Request):
    name: str | None = None
    type: HolidayType | None = None
    day: dt.date | None = Field(default=None, alias="date")
    is_recurring: bool | None = None
    recurring_month: int | None = None
    recurring_day: int | None = None
    is_active: bool | None = None

    def changes(self) -> dict[str, object]:
        """Return the fields present in the request body."""
        return self.model_dump(exclude_unset=True)


class HolidaySyncRequest(_Request):
    year: int | None = None
