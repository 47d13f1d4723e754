"""Tests for low-balance notifications."""

import asyncio
import logging
from decimal import Decimal
from uuid import uuid4

from meal_ledger.domain.ledger import BalanceChange
from meal_ledger.domain.models import BalanceType


def _change(previous: str, new: str) -> BalanceChange:
    return BalanceChange(
        user_id=uuid4(),
        balance_type=BalanceType.LUNCH,
        previous_balance=Decimal(previous),
        new_balance=Decimal(new),
        transaction_id=uuid4(),
    )


def test_alert_only_when_crossing_threshold(container) -> None:
    monitor = container.low_balance_monitor

    monitor(_change("600", "400"))
    monitor(_change("400", "300"))
    monitor(_change("300", "700"))

    (alert,) = monitor.pending()
    assert alert.balance == Decimal("400")
    assert alert.threshold == Decimal("500")


def test_ledger_postings_feed_the_monitor(
    container, notification_client, manager, member
) -> None:
    ledger = container.ledger_service
    ledger.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "800", "cash"
    )
    ledger.apply_transaction(member.id, "lunch", "deduction", "400", "lunch", manager)

    delivered = asyncio.run(container.low_balance_monitor.flush())

    assert delivered == 1
    (payload,) = notification_client.sent
    assert payload["event"] == "low_balance"
    assert payload["user_id"] == str(member.id)
    assert payload["balance"] == "400"
    assert container.low_balance_monitor.pending() == []


def test_failed_delivery_is_logged_and_dropped(
    container, notification_client, caplog, monkeypatch
) -> None:
    monkeypatch.setattr(logging.getLogger("meal_ledger"), "propagate", True)
    notification_client.fail = True
    container.low_balance_monitor(_change("600", "100"))

    with caplog.at_level(logging.ERROR, logger="meal_ledger"):
        delivered = asyncio.run(container.low_balance_monitor.flush())

    assert delivered == 0
    assert notification_client.sent == []
    assert "Low balance notification failed" in caplog.text
    assert container.low_balance_monitor.pending() == []
