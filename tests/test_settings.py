"""Tests for global settings."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from meal_ledger.domain.errors import PermissionDeniedError, ValidationError
from meal_ledger.domain.policy import (
    CutoffTimes,
    GlobalSettings,
    WeekendPolicy,
    saturday_ordinal,
    weekend_off_reason,
)


def test_load_seeds_defaults_once(container, repositories) -> None:
    assert repositories.settings.settings == GlobalSettings()
    assert repositories.settings.saves == 1

    container.settings_service.load()

    assert repositories.settings.saves == 1


def test_update_persists_and_reloads(container, repositories, admin) -> None:
    updated = container.settings_service.update(
        admin, replace(GlobalSettings(), low_balance_threshold=Decimal("200"))
    )

    assert updated.low_balance_threshold == Decimal("200")
    assert container.settings_service.current() == updated
    assert repositories.settings.settings == updated


def test_update_requires_settings_permission(container, manager) -> None:
    with pytest.raises(PermissionDeniedError):
        container.settings_service.update(manager, GlobalSettings())


@pytest.mark.parametrize(
    "document",
    [
        GlobalSettings(
            weekend_policy=WeekendPolicy(saturday_off=True, odd_saturday_off=True)
        ),
        GlobalSettings(
            weekend_policy=WeekendPolicy(
                odd_saturday_off=True, even_saturday_off=True
            )
        ),
        GlobalSettings(cutoff_times=CutoffTimes(lunch=24)),
        GlobalSettings(low_balance_threshold=Decimal("-1")),
    ],
)
def test_invalid_settings_are_rejected(
    container, repositories, admin, document
) -> None:
    with pytest.raises(ValidationError):
        container.settings_service.update(admin, document)

    assert repositories.settings.settings == GlobalSettings()


def test_saturday_ordinals() -> None:
    assert saturday_ordinal(date(2026, 3, 7)) == 1
    assert saturday_ordinal(date(2026, 3, 28)) == 4


def test_even_saturday_rule() -> None:
    policy = WeekendPolicy(odd_saturday_off=False, even_saturday_off=True)

    assert weekend_off_reason(date(2026, 3, 14), policy) == "even_saturday"
    assert weekend_off_reason(date(2026, 3, 7), policy) is None
