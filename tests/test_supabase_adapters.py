"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from meal_ledger.adapters.supabase_breakfast_repository import (
    SupabaseBreakfastRepository,
)
from meal_ledger.adapters.supabase_correction_repository import (
    SupabaseCorrectionRepository,
)
from meal_ledger.adapters.supabase_holiday_repository import SupabaseHolidayRepository
from meal_ledger.adapters.supabase_meal_repository import SupabaseMealRepository
from meal_ledger.adapters.supabase_month_repository import SupabaseMonthRepository
from meal_ledger.adapters.supabase_override_repository import (
    SupabaseOverrideRepository,
)
from meal_ledger.adapters.supabase_settings_repository import (
    SupabaseSettingsRepository,
    settings_from_document,
    settings_to_document,
)
from meal_ledger.adapters.supabase_transaction_repository import (
    SupabaseTransactionRepository,
)
from meal_ledger.adapters.supabase_user_repository import SupabaseUserRepository
from meal_ledger.domain.breakfast import Breakfast, BreakfastParticipant
from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.ledger import (
    Reference,
    ReferenceKind,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from meal_ledger.domain.meals import MealRecord
from meal_ledger.domain.models import BalanceType, MealType, Role
from meal_ledger.domain.policy import CutoffTimes, GlobalSettings


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {
            "select": [],
            "insert": [],
            "update": [],
            "upsert": [],
        }
    )
    last_payload: object | None = None
    last_options: dict[str, object] = field(default_factory=dict)
    filters: list[tuple[str, str, object]] = field(default_factory=list)
    orders: list[tuple[str, bool]] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":
        self._action = "select"
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.last_payload = payload
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        return self

    def upsert(self, payload, **options) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "upsert"
        self.last_payload = payload
        self.last_options = options
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.filters.append(("in", column, value))
        return self

    def or_(self, expression: str) -> "FakeTable":
        self.filters.append(("or", "", expression))
        return self

    def gte(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.filters.append(("gte", column, value))
        return self

    def lte(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.filters.append(("lte", column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def order(self, column: str, desc: bool = False) -> "FakeTable":
        self.orders.append((column, desc))
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def test_user_repository_parses_balance_columns() -> None:
    client = FakeSupabaseClient()
    user_id = uuid4()
    client.table("users").queue(
        "select",
        [
            {
                "id": str(user_id),
                "name": "Rahim",
                "role": "manager",
                "is_active": True,
                "permissions": ["breakfast:view"],
                "lunch_balance": "120.50",
                "dinner_balance": 40,
                "dinner_frozen": True,
                "dinner_frozen_reason": "dispute",
            }
        ],
    )
    repository = SupabaseUserRepository(client)

    user = repository.get_user(user_id)
    repository.set_balance_amount(user_id, BalanceType.LUNCH, Decimal("99.50"))

    assert user is not None
    assert user.role == Role.MANAGER
    assert user.permissions == frozenset({"breakfast:view"})
    assert user.balance(BalanceType.LUNCH).amount == Decimal("120.50")
    assert user.balance(BalanceType.BREAKFAST).amount == Decimal("0")
    assert user.balance(BalanceType.DINNER).is_frozen
    assert client.tables["users"].last_payload == {"lunch_balance": "99.50"}


def test_transaction_repository_stores_reference_columns() -> None:
    client = FakeSupabaseClient()
    table = client.table("transactions")
    month_id = uuid4()
    record = TransactionRecord(
        id=uuid4(),
        user_id=uuid4(),
        type=TransactionType.DEDUCTION,
        balance_type=BalanceType.LUNCH,
        amount=Decimal("-250"),
        previous_balance=Decimal("1000"),
        new_balance=Decimal("750"),
        description="Lunch charge",
        performed_by=uuid4(),
        created_at=datetime(2026, 3, 31, 18, 0, tzinfo=UTC),
        reference=Reference(ReferenceKind.MONTH_SETTINGS, month_id),
        status=TransactionStatus.PENDING,
    )
    table.queue("insert", [{"id": str(record.id)}])
    repository = SupabaseTransactionRepository(client)

    repository.create_transaction(record)
    payload = dict(table.last_payload)
    table.queue("select", [payload])
    found = repository.find_by_reference(record.reference, record.user_id, None)

    assert payload["reference_kind"] == "month_settings"
    assert payload["reference_id"] == str(month_id)
    assert payload["status"] == "pending"
    assert found == [record]
    assert ("eq", "reference_id", str(month_id)) in table.filters


def test_transaction_listing_is_newest_first() -> None:
    client = FakeSupabaseClient()
    repository = SupabaseTransactionRepository(client)

    repository.list_transactions(uuid4(), BalanceType.DINNER, 10)

    table = client.tables["transactions"]
    assert table.orders == [("created_at", True)]
    assert ("eq", "balance_type", "dinner") in table.filters


def test_meal_repository_upserts_on_cell_key() -> None:
    client = FakeSupabaseClient()
    table = client.table("meals")
    record = MealRecord(
        id=uuid4(),
        user_id=uuid4(),
        day=date(2026, 3, 11),
        meal_type=MealType.DINNER,
        is_on=True,
        count=2,
        notes="guest",
    )
    table.queue(
        "upsert",
        [
            {
                "id": str(record.id),
                "user_id": str(record.user_id),
                "date": "2026-03-11",
                "meal_type": "dinner",
                "is_on": True,
                "count": 2,
                "notes": "guest",
            }
        ],
    )
    repository = SupabaseMealRepository(client)

    stored = repository.upsert_meal(record)
    repository.list_meals(None, date(2026, 3, 1), date(2026, 3, 31), MealType.LUNCH)

    assert stored == record
    assert table.last_options == {"on_conflict": "user_id,date,meal_type"}
    assert ("gte", "date", "2026-03-01") in table.filters
    assert ("lte", "date", "2026-03-31") in table.filters


def test_override_candidates_filter_target_and_meal() -> None:
    client = FakeSupabaseClient()
    user_id = uuid4()
    client.table("rule_overrides").queue(
        "select",
        [
            {
                "id": str(uuid4()),
                "target_type": "user",
                "target_user_id": str(user_id),
                "date_type": "recurring",
                "start_date": "2026-03-01",
                "recurring_pattern": "weekly",
                "recurring_days": [3],
                "meal_type": "both",
                "action": "force_off",
                "priority": 3,
                "created_by_role": "manager",
                "created_at": "2026-03-01T00:00:00+00:00",
            }
        ],
    )
    repository = SupabaseOverrideRepository(client)

    (override,) = repository.list_candidates(user_id, MealType.LUNCH)

    filters = client.tables["rule_overrides"].filters
    assert ("in", "meal_type", ["lunch", "both"]) in filters
    assert any(op == "or" and str(user_id) in value for op, _, value in filters)
    assert override.recurring_days == (3,)
    assert override.created_by_role == Role.MANAGER


def test_month_repository_finds_containing_range() -> None:
    client = FakeSupabaseClient()
    month_id = uuid4()
    client.table("month_settings").queue(
        "select",
        [
            {
                "id": str(month_id),
                "year": 2026,
                "month": 3,
                "start_date": "2026-03-01",
                "end_date": "2026-03-31",
                "lunch_rate": "50.00",
                "dinner_rate": 60,
                "is_finalized": False,
            }
        ],
    )
    repository = SupabaseMonthRepository(client)

    month = repository.find_containing(date(2026, 3, 15))

    assert month is not None
    assert month.id == month_id
    assert month.dinner_rate == Decimal("60")
    filters = client.tables["month_settings"].filters
    assert ("lte", "start_date", "2026-03-15") in filters
    assert ("gte", "end_date", "2026-03-15") in filters


def test_holiday_listing_merges_recurring_rows() -> None:
    client = FakeSupabaseClient()
    table = client.table("holidays")
    table.queue(
        "select",
        [{"id": str(uuid4()), "name": "Victory Day", "date": "2026-12-16"}],
    )
    table.queue(
        "select",
        [
            {
                "id": str(uuid4()),
                "name": "Language Day",
                "type": "government",
                "is_recurring": True,
                "recurring_month": 2,
                "recurring_day": 21,
            }
        ],
    )
    repository = SupabaseHolidayRepository(client)

    holidays = repository.list_holidays(date(2026, 1, 1), date(2026, 12, 31), True)

    assert [holiday.name for holiday in holidays] == ["Victory Day", "Language Day"]
    assert holidays[1].matches(date(2030, 2, 21))


def test_settings_document_round_trip() -> None:
    settings = GlobalSettings(
        cutoff_times=CutoffTimes(lunch=9, dinner=15),
        low_balance_threshold=Decimal("250"),
    )

    assert settings_from_document(settings_to_document(settings)) == settings


def test_settings_document_fills_missing_sections() -> None:
    parsed = settings_from_document({"cutoff_times": {"lunch": 11}})

    assert parsed.cutoff_times == CutoffTimes(lunch=11, dinner=16)
    assert parsed.weekend_policy == GlobalSettings().weekend_policy
    assert parsed.low_balance_threshold == Decimal("500")


def test_settings_repository_load_and_save() -> None:
    client = FakeSupabaseClient()
    repository = SupabaseSettingsRepository(client)

    assert repository.load_settings() is None
    repository.save_settings(GlobalSettings())

    table = client.tables["global_settings"]
    assert table.last_payload["key"] == "global"
    assert table.last_options == {"on_conflict": "key"}


def test_breakfast_participants_live_in_json_column() -> None:
    client = FakeSupabaseClient()
    table = client.table("breakfasts")
    breakfast = Breakfast(
        id=uuid4(),
        day=date(2026, 3, 11),
        total_cost=Decimal("99"),
        participants=[
            BreakfastParticipant(user_id=uuid4(), cost=Decimal("50")),
            BreakfastParticipant(
                user_id=uuid4(),
                cost=Decimal("49"),
                deducted=True,
                transaction_id=uuid4(),
            ),
        ],
        submitted_by=uuid4(),
    )
    table.queue("insert", [{"id": str(breakfast.id)}])
    repository = SupabaseBreakfastRepository(client)

    repository.create_breakfast(breakfast)
    table.queue("select", [table.last_payload])
    loaded = repository.find_by_date(date(2026, 3, 11))

    assert loaded == breakfast


def test_correction_listing_filters_entity() -> None:
    client = FakeSupabaseClient()
    entity_id = uuid4()
    client.table("correction_history").queue(
        "select",
        [
            {
                "id": str(uuid4()),
                "entity": "meal",
                "entity_id": str(entity_id),
                "action": "force_edit",
                "reason": "late guest",
                "performed_by": str(uuid4()),
                "created_at": "2026-03-12T10:00:00+00:00",
                "before": None,
                "after": {"count": 2},
            }
        ],
    )
    repository = SupabaseCorrectionRepository(client)

    (record,) = repository.list_corrections(CorrectionEntity.MEAL, 10)

    assert record.entity_id == entity_id
    assert record.after == {"count": 2}
    assert ("eq", "entity", "meal") in client.tables["correction_history"].filters
