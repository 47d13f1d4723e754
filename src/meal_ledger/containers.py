"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID
from zoneinfo import ZoneInfo

from supabase import create_client

from meal_ledger.adapters.holiday_api_client import (
    HolidayApiClient,
    HttpxHolidayApiClient,
)
from meal_ledger.adapters.notification_client import (
    HttpxNotificationClient,
    NotificationClient,
)
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
)
from meal_ledger.adapters.supabase_transaction_repository import (
    SupabaseTransactionRepository,
)
from meal_ledger.adapters.supabase_user_repository import SupabaseUserRepository
from meal_ledger.config import Settings, parse_permissions
from meal_ledger.domain.models import Role, UserRecord
from meal_ledger.services.authorization import Authorizer
from meal_ledger.services.breakfast import BreakfastService
from meal_ledger.services.charges import BreakfastRepository, ChargeApplication
from meal_ledger.services.corrections import CorrectionRepository, CorrectionService
from meal_ledger.services.holidays import HolidayRepository, HolidayService
from meal_ledger.services.ledger import LedgerService, TransactionRepository
from meal_ledger.services.locks import KeyedLocks, MonthLocks
from meal_ledger.services.meals import MealRepository, MealStatusResolver
from meal_ledger.services.months import MonthRepository, MonthSettingsService
from meal_ledger.services.notifications import LowBalanceMonitor
from meal_ledger.services.overrides import OverrideRepository, OverrideService
from meal_ledger.services.settings import SettingsRepository, SettingsService
from meal_ledger.services.users import UserRepository, UserService

SERVICE_PRINCIPAL_ID = UUID(int=0)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class Repositories:
    """Persistence adapters used by the services."""

    users: UserRepository
    meals: MealRepository
    holidays: HolidayRepository
    overrides: OverrideRepository
    months: MonthRepository
    breakfasts: BreakfastRepository
    transactions: TransactionRepository
    corrections: CorrectionRepository
    settings: SettingsRepository


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    authorizer: Authorizer
    service_principal: UserRecord
    user_service: UserService
    settings_service: SettingsService
    correction_service: CorrectionService
    ledger_service: LedgerService
    holiday_service: HolidayService
    override_service: OverrideService
    month_service: MonthSettingsService
    meal_resolver: MealStatusResolver
    charge_application: ChargeApplication
    breakfast_service: BreakfastService
    low_balance_monitor: LowBalanceMonitor
    close_resources: Callable[[], Awaitable[None]]


def wire_container(  # noqa: PLR0913
    settings: Settings,
    repositories: Repositories,
    holiday_client: HolidayApiClient | None = None,
    notification_client: NotificationClient | None = None,
    clock: Callable[[], datetime] = _utc_now,
    close_resources: Callable[[], Awaitable[None]] | None = None,
) -> AppContainer:
    """Build the services on top of the given adapters."""
    authorizer = Authorizer.default()
    month_locks = MonthLocks()
    settings_service = SettingsService(repositories.settings, authorizer)
    correction_service = CorrectionService(repositories.corrections, clock=clock)
    ledger_service = LedgerService(
        users=repositories.users,
        transactions=repositories.transactions,
        authorizer=authorizer,
        corrections=correction_service,
        locks=KeyedLocks(),
        clock=clock,
    )
    low_balance_monitor = LowBalanceMonitor(settings_service, notification_client)
    ledger_service.subscribe(low_balance_monitor)
    holiday_service = HolidayService(
        repository=repositories.holidays,
        authorizer=authorizer,
        api_client=holiday_client,
        country_code=settings.holiday_country_code,
    )
    override_service = OverrideService(repositories.overrides, authorizer, clock=clock)
    month_service = MonthSettingsService(
        repository=repositories.months,
        authorizer=authorizer,
        corrections=correction_service,
        month_locks=month_locks,
        clock=clock,
    )
    meal_resolver = MealStatusResolver(
        meals=repositories.meals,
        users=repositories.users,
        overrides=override_service,
        holidays=holiday_service,
        months=month_service,
        settings=settings_service,
        authorizer=authorizer,
        corrections=correction_service,
        month_locks=month_locks,
        timezone=ZoneInfo(settings.timezone),
        clock=clock,
        read_retry_attempts=settings.read_retry_attempts,
        bulk_workers=settings.bulk_toggle_workers,
    )
    charge_application = ChargeApplication(
        ledger=ledger_service,
        breakfasts=repositories.breakfasts,
        users=repositories.users,
        months=month_service,
        resolver=meal_resolver,
        authorizer=authorizer,
        month_locks=month_locks,
        workers=settings.charge_workers,
    )
    meal_resolver.recharger = charge_application.recharge_user
    breakfast_service = BreakfastService(
        repository=repositories.breakfasts,
        users=repositories.users,
        charges=charge_application,
        ledger=ledger_service,
        months=month_service,
        settings=settings_service,
        authorizer=authorizer,
        corrections=correction_service,
    )
    service_principal = UserRecord(
        id=SERVICE_PRINCIPAL_ID,
        name="scheduler",
        role=Role.USER,
        permissions=parse_permissions(settings.service_permissions),
    )

    async def close_nothing() -> None:
        return None

    return AppContainer(
        settings=settings,
        authorizer=authorizer,
        service_principal=service_principal,
        user_service=UserService(repositories.users),
        settings_service=settings_service,
        correction_service=correction_service,
        ledger_service=ledger_service,
        holiday_service=holiday_service,
        override_service=override_service,
        month_service=month_service,
        meal_resolver=meal_resolver,
        charge_application=charge_application,
        breakfast_service=breakfast_service,
        low_balance_monitor=low_balance_monitor,
        close_resources=close_resources or close_nothing,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    repositories = Repositories(
        users=SupabaseUserRepository(supabase_client),
        meals=SupabaseMealRepository(supabase_client),
        holidays=SupabaseHolidayRepository(supabase_client),
        overrides=SupabaseOverrideRepository(supabase_client),
        months=SupabaseMonthRepository(supabase_client),
        breakfasts=SupabaseBreakfastRepository(supabase_client),
        transactions=SupabaseTransactionRepository(supabase_client),
        corrections=SupabaseCorrectionRepository(supabase_client),
        settings=SupabaseSettingsRepository(supabase_client),
    )
    holiday_client = HttpxHolidayApiClient.create(
        resolved_settings.holiday_api_base_url
    )
    notification_client = (
        HttpxNotificationClient.create(resolved_settings.notification_webhook_url)
        if resolved_settings.notification_webhook_url
        else None
    )

    async def close_resources() -> None:
        await holiday_client.close()
        if notification_client is not None:
            await notification_client.close()

    return wire_container(
        settings=resolved_settings,
        repositories=repositories,
        holiday_client=holiday_client,
        notification_client=notification_client,
        close_resources=close_resources,
    )
