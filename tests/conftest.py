"""Shared test fixtures."""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import httpx
import pytest

from meal_ledger.adapters.holiday_api_client import HolidayApiClient
from meal_ledger.adapters.notification_client import NotificationClient
from meal_ledger.config import Settings
from meal_ledger.containers import AppContainer, Repositories, wire_container
from meal_ledger.domain.breakfast import Breakfast
from meal_ledger.domain.corrections import CorrectionEntity, CorrectionRecord
from meal_ledger.domain.holidays import Holiday
from meal_ledger.domain.ledger import (
    Reference,
    TransactionRecord,
    TransactionStatus,
)
from meal_ledger.domain.meals import MealRecord
from meal_ledger.domain.models import Balance, BalanceType, MealType, Role, UserRecord
from meal_ledger.domain.months import MonthSettings
from meal_ledger.domain.overrides import OverrideMealType, RuleOverride, TargetType
from meal_ledger.domain.policy import GlobalSettings
from meal_ledger.services.charges import BreakfastRepository
from meal_ledger.services.corrections import CorrectionRepository
from meal_ledger.services.holidays import HolidayRepository
from meal_ledger.services.ledger import TransactionRepository
from meal_ledger.services.meals import MealRepository
from meal_ledger.services.months import MonthRepository
from meal_ledger.services.overrides import OverrideRepository
from meal_ledger.services.settings import SettingsRepository
from meal_ledger.services.users import UserRepository

# Tuesday 2026-03-10, 08:00 in Asia/Dhaka.
NOW = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)
TODAY = date(2026, 3, 10)


@dataclass
class FakeClock:
    """Adjustable clock injected into services."""

    now: datetime = NOW

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user repository for tests."""

    users: dict[UUID, UserRecord] = field(default_factory=dict)

    def get_user(self, user_id: UUID) -> UserRecord | None:
        return self.users.get(user_id)

    def list_users(self, active_only: bool) -> list[UserRecord]:
        return [
            user for user in self.users.values() if user.is_active or not active_only
        ]

    def create_user(
        self, name: str, role: Role, permissions: frozenset[str]
    ) -> UserRecord:
        user = UserRecord(id=uuid4(), name=name, role=role, permissions=permissions)
        self.users[user.id] = user
        return user

    def set_balance_amount(
        self, user_id: UUID, balance_type: BalanceType, amount: Decimal
    ) -> None:
        user = self.users[user_id]
        balance = replace(user.balance(balance_type), amount=amount)
        self.users[user_id] = replace(
            user, balances={**user.balances, balance_type: balance}
        )

    def set_balance_frozen(
        self,
        user_id: UUID,
        balance_type: BalanceType,
        is_frozen: bool,
        reason: str | None,
    ) -> None:
        user = self.users[user_id]
        balance = replace(
            user.balance(balance_type), is_frozen=is_frozen, frozen_reason=reason
        )
        self.users[user_id] = replace(
            user, balances={**user.balances, balance_type: balance}
        )


@dataclass
class InMemoryTransactionRepository(TransactionRepository):
    """In-memory transaction log; ``fail_commit`` simulates a lost write."""

    records: dict[UUID, TransactionRecord] = field(default_factory=dict)
    fail_commit: bool = False

    def create_transaction(self, record: TransactionRecord) -> None:
        self.records[record.id] = record

    def mark_committed(self, transaction_id: UUID) -> None:
        if self.fail_commit:
            raise httpx.ConnectError("connection dropped")
        self.records[transaction_id] = replace(
            self.records[transaction_id], status=TransactionStatus.COMMITTED
        )

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord | None:
        return self.records.get(transaction_id)

    def list_transactions(
        self,
        user_id: UUID,
        balance_type: BalanceType | None,
        limit: int | None,
    ) -> list[TransactionRecord]:
        rows = [
            record
            for record in reversed(list(self.records.values()))
            if record.user_id == user_id
            and (balance_type is None or record.balance_type == balance_type)
        ]
        return rows if limit is None else rows[:limit]

    def find_by_reference(
        self,
        reference: Reference,
        user_id: UUID | None,
        balance_type: BalanceType | None,
    ) -> list[TransactionRecord]:
        return [
            record
            for record in self.records.values()
            if record.reference == reference
            and (user_id is None or record.user_id == user_id)
            and (balance_type is None or record.balance_type == balance_type)
        ]

    def mark_reversed(self, transaction_id: UUID, reversed_by_id: UUID) -> None:
        self.records[transaction_id] = replace(
            self.records[transaction_id],
            is_reversed=True,
            reversed_by_id=reversed_by_id,
        )

    def mark_corrected(
        self, transaction_id: UUID, corrected_by: UUID, reason: str
    ) -> None:
        self.records[transaction_id] = replace(
            self.records[transaction_id],
            is_corrected=True,
            corrected_by=corrected_by,
            correction_reason=reason,
        )


@dataclass
class InMemoryMealRepository(MealRepository):
    """In-memory meal records; ``read_failures`` makes reads raise first."""

    records: dict[tuple[UUID, date, MealType], MealRecord] = field(
        default_factory=dict
    )
    read_failures: int = 0

    def _maybe_fail(self) -> None:
        if self.read_failures > 0:
            self.read_failures -= 1
            raise httpx.ConnectError("store unavailable")

    def get_meal(
        self, user_id: UUID, day: date, meal_type: MealType
    ) -> MealRecord | None:
        self._maybe_fail()
        return self.records.get((user_id, day, meal_type))

    def list_meals(
        self,
        user_id: UUID | None,
        start: date,
        end: date,
        meal_type: MealType | None,
    ) -> list[MealRecord]:
        self._maybe_fail()
        return [
            record
            for record in self.records.values()
            if (user_id is None or record.user_id == user_id)
            and start <= record.day <= end
            and (meal_type is None or record.meal_type == meal_type)
        ]

    def upsert_meal(self, record: MealRecord) -> MealRecord:
        self.records[(record.user_id, record.day, record.meal_type)] = record
        return record


@dataclass
class InMemoryHolidayRepository(HolidayRepository):
    """In-memory holiday repository for tests."""

    holidays: dict[UUID, Holiday] = field(default_factory=dict)

    def get_holiday(self, holiday_id: UUID) -> Holiday | None:
        return self.holidays.get(holiday_id)

    def list_holidays(
        self, start: date | None, end: date | None, active_only: bool
    ) -> list[Holiday]:
        result = []
        for holiday in self.holidays.values():
            if active_only and not holiday.is_active:
                continue
            if not holiday.is_recurring and holiday.day is not None:
                if start is not None and holiday.day < start:
                    continue
                if end is not None and holiday.day > end:
                    continue
            result.append(holiday)
        return result

    def find_by_date(self, day: date) -> Holiday | None:
        for holiday in self.holidays.values():
            if not holiday.is_recurring and holiday.day == day:
                return holiday
        return None

    def create_holiday(self, holiday: Holiday) -> None:
        self.holidays[holiday.id] = holiday

    def update_holiday(self, holiday: Holiday) -> None:
        self.holidays[holiday.id] = holiday


@dataclass
class InMemoryOverrideRepository(OverrideRepository):
    """In-memory override repository for tests."""

    overrides: dict[UUID, RuleOverride] = field(default_factory=dict)

    def get_override(self, override_id: UUID) -> RuleOverride | None:
        return self.overrides.get(override_id)

    def list_overrides(self, active_only: bool) -> list[RuleOverride]:
        return [o for o in self.overrides.values() if o.is_active or not active_only]

    def list_candidates(self, user_id: UUID, meal_type: MealType) -> list[RuleOverride]:
        meal_types = {OverrideMealType(meal_type.value), OverrideMealType.BOTH}
        return [
            override
            for override in self.overrides.values()
            if override.is_active
            and override.meal_type in meal_types
            and (
                override.target_type != TargetType.USER
                or override.target_user_id == user_id
            )
        ]

    def create_override(self, override: RuleOverride) -> None:
        self.overrides[override.id] = override

    def update_override(self, override: RuleOverride) -> None:
        self.overrides[override.id] = override


@dataclass
class InMemoryMonthRepository(MonthRepository):
    """In-memory month settings repository for tests."""

    months: dict[UUID, MonthSettings] = field(default_factory=dict)

    def get_month(self, month_id: UUID) -> MonthSettings | None:
        return self.months.get(month_id)

    def find_by_period(self, year: int, month: int) -> MonthSettings | None:
        for settings in self.months.values():
            if (settings.year, settings.month) == (year, month):
                return settings
        return None

    def find_containing(self, day: date) -> MonthSettings | None:
        for settings in self.months.values():
            if settings.contains(day):
                return settings
        return None

    def find_overlapping(self, start: date, end: date) -> list[MonthSettings]:
        return [
            settings
            for settings in self.months.values()
            if settings.start_date <= end and start <= settings.end_date
        ]

    def list_months(self) -> list[MonthSettings]:
        return sorted(
            self.months.values(), key=lambda m: (m.year, m.month), reverse=True
        )

    def create_month(self, month: MonthSettings) -> None:
        self.months[month.id] = month

    def update_month(self, month: MonthSettings) -> None:
        self.months[month.id] = month


@dataclass
class InMemoryBreakfastRepository(BreakfastRepository):
    """In-memory breakfast repository for tests."""

    breakfasts: dict[UUID, Breakfast] = field(default_factory=dict)

    def get_breakfast(self, breakfast_id: UUID) -> Breakfast | None:
        return self.breakfasts.get(breakfast_id)

    def find_by_date(self, day: date) -> Breakfast | None:
        for breakfast in self.breakfasts.values():
            if breakfast.day == day:
                return breakfast
        return None

    def list_breakfasts(self, start: date, end: date) -> list[Breakfast]:
        return [b for b in self.breakfasts.values() if start <= b.day <= end]

    def create_breakfast(self, breakfast: Breakfast) -> None:
        self.breakfasts[breakfast.id] = breakfast

    def update_breakfast(self, breakfast: Breakfast) -> None:
        self.breakfasts[breakfast.id] = breakfast


@dataclass
class InMemoryCorrectionRepository(CorrectionRepository):
    """In-memory correction history for tests."""

    records: list[CorrectionRecord] = field(default_factory=list)

    def create_correction(self, record: CorrectionRecord) -> None:
        self.records.append(record)

    def list_corrections(
        self, entity: CorrectionEntity | None, limit: int
    ) -> list[CorrectionRecord]:
        rows = [
            r for r in reversed(self.records) if entity is None or r.entity == entity
        ]
        return rows[:limit]


@dataclass
class InMemorySettingsRepository(SettingsRepository):
    """In-memory settings document for tests."""

    settings: GlobalSettings | None = None
    saves: int = 0

    def load_settings(self) -> GlobalSettings | None:
        return self.settings

    def save_settings(self, settings: GlobalSettings) -> None:
        self.settings = settings
        self.saves += 1


@dataclass
class FakeHolidayApiClient(HolidayApiClient):
    """Holiday feed returning canned entries."""

    entries: list[dict[str, object]] = field(default_factory=list)
    requests: list[tuple[int, str]] = field(default_factory=list)

    async def public_holidays(
        self, year: int, country_code: str
    ) -> list[dict[str, object]]:
        self.requests.append((year, country_code))
        return self.entries


@dataclass
class FakeNotificationClient(NotificationClient):
    """Notification client that records payloads or fails on demand."""

    sent: list[dict[str, object]] = field(default_factory=list)
    fail: bool = False

    async def send(self, payload: dict[str, object]) -> None:
        if self.fail:
            raise httpx.ConnectError("webhook unreachable")
        self.sent.append(payload)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        service_token="service-token",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repositories() -> Repositories:
    return Repositories(
        users=InMemoryUserRepository(),
        meals=InMemoryMealRepository(),
        holidays=InMemoryHolidayRepository(),
        overrides=InMemoryOverrideRepository(),
        months=InMemoryMonthRepository(),
        breakfasts=InMemoryBreakfastRepository(),
        transactions=InMemoryTransactionRepository(),
        corrections=InMemoryCorrectionRepository(),
        settings=InMemorySettingsRepository(),
    )


@pytest.fixture
def holiday_client() -> FakeHolidayApiClient:
    return FakeHolidayApiClient()


@pytest.fixture
def notification_client() -> FakeNotificationClient:
    return FakeNotificationClient()


@pytest.fixture
def container(
    settings: Settings,
    repositories: Repositories,
    holiday_client: FakeHolidayApiClient,
    notification_client: FakeNotificationClient,
    clock: FakeClock,
) -> AppContainer:
    container = wire_container(
        settings=settings,
        repositories=repositories,
        holiday_client=holiday_client,
        notification_client=notification_client,
        clock=clock,
    )
    container.settings_service.load()
    return container


@pytest.fixture
def make_user(repositories: Repositories) -> Callable[..., UserRecord]:
    def factory(
        role: Role = Role.USER,
        name: str = "member",
        is_active: bool = True,
        **amounts: str,
    ) -> UserRecord:
        balances = {
            balance_type: Balance(amount=Decimal(amounts.get(balance_type.value, "0")))
            for balance_type in BalanceType
        }
        user = UserRecord(
            id=uuid4(),
            name=name,
            role=role,
            is_active=is_active,
            balances=balances,
        )
        repositories.users.users[user.id] = user
        return user

    return factory


@pytest.fixture
def member(make_user: Callable[..., UserRecord]) -> UserRecord:
    return make_user(Role.USER, "member")


@pytest.fixture
def manager(make_user: Callable[..., UserRecord]) -> UserRecord:
    return make_user(Role.MANAGER, "manager")


@pytest.fixture
def admin(make_user: Callable[..., UserRecord]) -> UserRecord:
    return make_user(Role.ADMIN, "admin")


@pytest.fixture
def superadmin(make_user: Callable[..., UserRecord]) -> UserRecord:
    return make_user(Role.SUPERADMIN, "superadmin")


@pytest.fixture
def march(repositories: Repositories) -> MonthSettings:
    month = MonthSettings(
        id=uuid4(),
        year=2026,
        month=3,
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 31),
        lunch_rate=Decimal("50"),
        dinner_rate=Decimal("60"),
    )
    repositories.months.create_month(month)
    return month


def fresh(repositories: Repositories, user: UserRecord) -> UserRecord:
    """Return the stored version of ``user``."""
    return repositories.users.users[user.id]
