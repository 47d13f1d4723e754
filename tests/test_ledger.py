"""Tests for the ledger service."""

import time
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import httpx
import pytest

from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.errors import (
    AlreadyProcessedError,
    BalanceFrozenError,
    PermissionDeniedError,
    ValidationError,
)
from meal_ledger.domain.ledger import (
    ReferenceKind,
    TransactionStatus,
    TransactionType,
)
from meal_ledger.domain.models import BalanceType
from tests.conftest import fresh


def test_postings_keep_balance_equal_to_log(
    container, repositories, manager, member
) -> None:
    ledger = container.ledger_service

    ledger.post_manual_transaction(
        manager, member.id, BalanceType.LUNCH, TransactionType.DEPOSIT, "1000", "cash"
    )
    deduction = ledger.apply_transaction(
        member.id,
        BalanceType.LUNCH,
        TransactionType.DEDUCTION,
        Decimal("250"),
        "lunch",
        manager,
    )

    assert deduction.amount == Decimal("-250")
    assert deduction.previous_balance == Decimal("1000")
    assert deduction.new_balance == Decimal("750")
    assert fresh(repositories, member).balance(BalanceType.LUNCH).amount == Decimal(
        "750"
    )
    report = ledger.reconcile(member.id, BalanceType.LUNCH)
    assert report.is_consistent
    assert report.replayed_balance == Decimal("750")


def test_balances_are_independent(container, repositories, manager, member) -> None:
    container.ledger_service.post_manual_transaction(
        manager, member.id, "dinner", "deposit", "300", "cash"
    )

    balances = container.ledger_service.get_balances(member.id)

    assert balances[BalanceType.DINNER].amount == Decimal("300")
    assert balances[BalanceType.LUNCH].amount == Decimal("0")
    assert balances[BalanceType.BREAKFAST].amount == Decimal("0")


def test_zero_amount_is_rejected(container, manager, member) -> None:
    with pytest.raises(ValidationError):
        container.ledger_service.post_manual_transaction(
            manager, member.id, "lunch", "deposit", "0", "nothing"
        )


def test_members_cannot_post_manual_transactions(container, member) -> None:
    with pytest.raises(PermissionDeniedError):
        container.ledger_service.post_manual_transaction(
            member, member.id, "lunch", "deposit", "100", "self service"
        )


def test_reversal_restores_balance_and_links_original(
    container, repositories, manager, member
) -> None:
    ledger = container.ledger_service
    ledger.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "500", "cash"
    )
    charge = ledger.apply_transaction(
        member.id, "lunch", "deduction", "120", "lunch", manager
    )

    reversal = ledger.reverse(manager, charge.id, "entered twice")

    assert reversal.type == TransactionType.REFUND
    assert reversal.amount == Decimal("120")
    assert reversal.original_transaction_id == charge.id
    assert reversal.reference.kind == ReferenceKind.TRANSACTION
    original = repositories.transactions.get_transaction(charge.id)
    assert original.is_reversed
    assert original.reversed_by_id == reversal.id
    assert fresh(repositories, member).balance(BalanceType.LUNCH).amount == Decimal(
        "500"
    )


def test_reversing_a_deposit_posts_a_negative_adjustment(
    container, manager, member
) -> None:
    ledger = container.ledger_service
    deposit = ledger.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "200", "cash"
    )

    reversal = ledger.reverse(manager, deposit.id, "wrong user")

    assert reversal.type == TransactionType.ADJUSTMENT
    assert reversal.amount == Decimal("-200")


def test_double_reverse_is_rejected(container, manager, member) -> None:
    ledger = container.ledger_service
    deposit = ledger.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "200", "cash"
    )
    reversal = ledger.reverse(manager, deposit.id, "mistake")

    with pytest.raises(AlreadyProcessedError):
        ledger.reverse(manager, deposit.id, "again")
    with pytest.raises(AlreadyProcessedError):
        ledger.reverse(manager, reversal.id, "undo the undo")


def test_reverse_requires_reason(container, manager, member) -> None:
    deposit = container.ledger_service.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "200", "cash"
    )

    with pytest.raises(ValidationError):
        container.ledger_service.reverse(manager, deposit.id, "  ")


def test_frozen_balance_blocks_postings_without_override(
    container, repositories, manager, admin, member
) -> None:
    ledger = container.ledger_service
    ledger.freeze(manager, member.id, BalanceType.LUNCH, "dispute")

    with pytest.raises(BalanceFrozenError) as excinfo:
        ledger.post_manual_transaction(
            manager, member.id, "lunch", "deposit", "100", "cash"
        )
    record = ledger.post_manual_transaction(
        admin, member.id, "lunch", "deposit", "100", "cash"
    )

    assert excinfo.value.state == "frozen"
    assert record.new_balance == Decimal("100")
    assert fresh(repositories, member).balance(BalanceType.LUNCH).is_frozen


def test_freeze_twice_is_rejected(container, manager, member) -> None:
    ledger = container.ledger_service
    ledger.freeze(manager, member.id, "dinner", None)

    with pytest.raises(AlreadyProcessedError):
        ledger.freeze(manager, member.id, "dinner", None)
    balance = ledger.unfreeze(manager, member.id, "dinner")

    assert not balance.is_frozen


def test_lost_commit_leaves_pending_marker_for_reconcile(
    container, repositories, manager, member
) -> None:
    repositories.transactions.fail_commit = True

    with pytest.raises(httpx.ConnectError):
        container.ledger_service.post_manual_transaction(
            manager, member.id, "lunch", "deposit", "100", "cash"
        )
    report = container.ledger_service.reconcile(member.id, "lunch")

    (pending,) = repositories.transactions.records.values()
    assert pending.status == TransactionStatus.PENDING
    assert report.pending_transaction_ids == [pending.id]
    assert not report.is_consistent


def test_reconcile_all_reports_only_drift(
    container, repositories, manager, superadmin, member
) -> None:
    ledger = container.ledger_service
    ledger.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "100", "cash"
    )
    repositories.users.set_balance_amount(member.id, BalanceType.DINNER, Decimal("5"))

    reports = ledger.reconcile_all(superadmin)

    assert [(r.user_id, r.balance_type) for r in reports] == [
        (member.id, BalanceType.DINNER)
    ]
    assert reports[0].drift == Decimal("-5")


def test_correct_transaction_posts_difference_and_audits(
    container, repositories, manager, superadmin, member
) -> None:
    ledger = container.ledger_service
    charge = ledger.apply_transaction(
        member.id, "lunch", "deduction", "100", "lunch", manager
    )

    adjustment = ledger.correct_transaction(superadmin, charge.id, "-80", "rate typo")

    assert adjustment.amount == Decimal("20")
    assert adjustment.new_balance == Decimal("-80")
    assert repositories.transactions.get_transaction(charge.id).is_corrected
    (correction,) = repositories.corrections.records
    assert correction.entity == CorrectionEntity.TRANSACTION
    assert correction.before == {"amount": "-100"}
    assert correction.after == {"amount": "-80"}


def test_correct_transaction_requires_superadmin(
    container, admin, manager, member
) -> None:
    charge = container.ledger_service.apply_transaction(
        member.id, "lunch", "deduction", "100", "lunch", manager
    )

    with pytest.raises(PermissionDeniedError):
        container.ledger_service.correct_transaction(admin, charge.id, "-80", "typo")


def test_failing_listener_does_not_break_posting(container, manager, member) -> None:
    def broken(_change) -> None:
        raise RuntimeError("listener down")

    container.ledger_service.subscribe(broken)

    record = container.ledger_service.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "100", "cash"
    )

    assert record.status == TransactionStatus.COMMITTED


def test_concurrent_postings_do_not_lose_updates(
    container, repositories, manager, member, monkeypatch
) -> None:
    ledger = container.ledger_service
    read_user = repositories.users.get_user

    def slow_get_user(user_id):  # type: ignore[no-untyped-def]
        user = read_user(user_id)
        time.sleep(0.001)
        return user

    monkeypatch.setattr(repositories.users, "get_user", slow_get_user)

    def deduct(_index: int):  # type: ignore[no-untyped-def]
        return ledger.apply_transaction(
            member.id, "lunch", "deduction", "1", "lunch", manager
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        records = list(pool.map(deduct, range(40)))

    assert sorted(record.new_balance for record in records) == [
        Decimal(-n) for n in range(40, 0, -1)
    ]
    assert fresh(repositories, member).balance(BalanceType.LUNCH).amount == Decimal(
        "-40"
    )
    assert ledger.reconcile(member.id, BalanceType.LUNCH).is_consistent


def test_balance_locks_are_released_after_use(container, manager, member) -> None:
    ledger = container.ledger_service
    deposit = ledger.post_manual_transaction(
        manager, member.id, "lunch", "deposit", "200", "cash"
    )
    ledger.reverse(manager, deposit.id, "wrong user")

    assert ledger.locks.active_keys() == 0
