"""Process-wide meal policy settings."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from meal_ledger.domain.models import UserRecord
from meal_ledger.domain.policy import GlobalSettings
from meal_ledger.services.authorization import Authorizer, Permission

logger = logging.getLogger(__name__)


class SettingsRepository(Protocol):
    """Persistence interface for the global settings document."""

    def load_settings(self) -> GlobalSettings | None:
        """Return the stored settings, if any."""

    def save_settings(self, settings: GlobalSettings) -> None:
        """Store the settings document."""


@dataclass
class SettingsService:
    """Holds the settings loaded at startup and applies explicit updates."""

    repository: SettingsRepository
    authorizer: Authorizer
    _current: GlobalSettings | None = field(default=None, init=False, repr=False)

    def load(self) -> GlobalSettings:
        """Read settings from storage, seeding defaults on first run."""
        settings = self.repository.load_settings()
        if settings is None:
            settings = GlobalSettings()
            self.repository.save_settings(settings)
            logger.info("Seeded default global settings")
        self._current = settings
        return settings

    def current(self) -> GlobalSettings:
        """Return the cached settings."""
        if self._current is None:
            return self.load()
        return self._current

    def update(self, actor: UserRecord, settings: GlobalSettings) -> GlobalSettings:
        """Validate, persist and reload the settings document."""
        self.authorizer.require(actor, Permission.MANAGE_SETTINGS)
        settings.validate()
        self.repository.save_settings(settings)
        logger.info("Global settings updated by %s", actor.id)
        return self.load()
