"""Tests for container wiring."""

import asyncio
from decimal import Decimal

from meal_ledger.adapters.supabase_user_repository import SupabaseUserRepository
from meal_ledger.containers import SERVICE_PRINCIPAL_ID, build_container
from meal_ledger.domain.models import BalanceType


def test_build_container_creates_services(settings, monkeypatch) -> None:
    calls: list[tuple[str, str]] = []

    def fake_create_client(url: str, key: str) -> object:
        calls.append((url, key))
        return object()

    monkeypatch.setattr("meal_ledger.containers.create_client", fake_create_client)
    settings.notification_webhook_url = "https://hooks.test/low-balance"

    container = build_container(settings)

    assert calls == [("https://example.supabase.co", "service-key")]
    assert isinstance(container.user_service.repository, SupabaseUserRepository)
    assert container.service_principal.id == SERVICE_PRINCIPAL_ID
    assert container.low_balance_monitor.client is not None
    asyncio.run(container.close_resources())


def test_resolver_recharges_through_charge_application(container) -> None:
    assert container.meal_resolver.recharger == (
        container.charge_application.recharge_user
    )


def test_ledger_changes_reach_the_monitor(container, manager, member) -> None:
    container.ledger_service.post_manual_transaction(
        manager, member.id, BalanceType.DINNER, "deposit", "700", "cash"
    )
    container.ledger_service.apply_transaction(
        member.id, BalanceType.DINNER, "deduction", "300", "dinner", manager
    )

    (alert,) = container.low_balance_monitor.pending()
    assert alert.balance == Decimal("400")
