"""Supabase repository for the global settings document."""

from dataclasses import dataclass

from supabase import Client

from meal_ledger.adapters.supabase_rows import to_decimal
from meal_ledger.domain.policy import (
    BreakfastPolicy,
    CutoffTimes,
    DefaultMealStatus,
    GlobalSettings,
    HolidayPolicy,
    WeekendPolicy,
)
from meal_ledger.services.settings import SettingsRepository

_SETTINGS_KEY = "global"


@dataclass
class SupabaseSettingsRepository(SettingsRepository):
    """Stores the settings as one jsonb document row."""

    client: Client

    def load_settings(self) -> GlobalSettings | None:
        """Return the stored settings, if any."""
        response = (
            self.client.table("global_settings")
            .select("document")
            .eq("key", _SETTINGS_KEY)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return settings_from_document(response.data[0].get("document") or {})

    def save_settings(self, settings: GlobalSettings) -> None:
        """Store the settings document."""
        self.client.table("global_settings").upsert(
            {"key": _SETTINGS_KEY, "document": settings_to_document(settings)},
            on_conflict="key",
        ).execute()


def settings_to_document(settings: GlobalSettings) -> dict[str, object]:
    """Serialize settings to a JSON-compatible document."""
    weekend = settings.weekend_policy
    holiday = settings.holiday_policy
    return {
        "weekend_policy": {
            "friday_off": weekend.friday_off,
            "saturday_off": weekend.saturday_off,
            "odd_saturday_off": weekend.odd_saturday_off,
            "even_saturday_off": weekend.even_saturday_off,
        },
        "holiday_policy": {
            "government_holiday_off": holiday.government_holiday_off,
            "optional_holiday_off": holiday.optional_holiday_off,
            "religious_holiday_off": holiday.religious_holiday_off,
        },
        "cutoff_times": {
            "lunch": settings.cutoff_times.lunch,
            "dinner": settings.cutoff_times.dinner,
        },
        "default_meal_status": {
            "lunch": settings.default_meal_status.lunch,
            "dinner": settings.default_meal_status.dinner,
        },
        "breakfast_policy": {"auto_deduct": settings.breakfast_policy.auto_deduct},
        "low_balance_threshold": str(settings.low_balance_threshold),
    }


def settings_from_document(document: dict[str, object]) -> GlobalSettings:
    """Parse a settings document, filling missing sections with defaults."""
    defaults = GlobalSettings()
    threshold = document.get("low_balance_threshold")
    return GlobalSettings(
        weekend_policy=WeekendPolicy(**(document.get("weekend_policy") or {})),
        holiday_policy=HolidayPolicy(**(document.get("holiday_policy") or {})),
        cutoff_times=CutoffTimes(**(document.get("cutoff_times") or {})),
        default_meal_status=DefaultMealStatus(
            **(document.get("default_meal_status") or {})
        ),
        breakfast_policy=BreakfastPolicy(**(document.get("breakfast_policy") or {})),
        low_balance_threshold=(
            to_decimal(threshold)
            if threshold is not None
            else defaults.low_balance_threshold
        ),
    )
