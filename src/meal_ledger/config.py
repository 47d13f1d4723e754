"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

DEFAULT_SERVICE_PERMISSIONS = "charges:run,holidays:sync"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    service_token: str
    service_permissions: str = DEFAULT_SERVICE_PERMISSIONS
    timezone: str = "Asia/Dhaka"
    holiday_api_base_url: str = "https://date.nager.at/api/v3"
    holiday_country_code: str = "BD"
    notification_webhook_url: str | None = None
    log_level: str = "INFO"
    read_retry_attempts: int = 2
    charge_workers: int = 4
    bulk_toggle_workers: int = 4
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_permissions(raw: str | None) -> frozenset[str]:
    """Parse a comma separated permission list from env."""
    if raw is None:
        return frozenset()
    permissions: set[str] = set()
    for chunk in raw.split(","):
        value = chunk.strip()
        if value:
            permissions.add(value)
    return frozenset(permissions)
