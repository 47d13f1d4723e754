"""Balance and transaction endpoints."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from meal_ledger.api.deps import current_user, get_container, require_view, to_json
from meal_ledger.api.schemas import (
    FreezeRequest,
    ReasonRequest,
    TransactionRequest,
    UnfreezeRequest,
)
from meal_ledger.containers import AppContainer
from meal_ledger.domain.ledger import ReconcileReport
from meal_ledger.domain.models import BalanceType, UserRecord
from meal_ledger.services.authorization import Permission

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balances")
def balances(
    user_id: UUID | None = None,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return the three balances of a user."""
    target = user_id or actor.id
    require_view(
        container,
        actor,
        target,
        Permission.VIEW_OWN_BALANCE,
        Permission.VIEW_ALL_BALANCES,
    )
    current = container.ledger_service.get_balances(target)
    return {
        "user_id": str(target),
        "balances": {
            balance_type.value: to_json(balance)
            for balance_type, balance in current.items()
        },
    }


@router.get("/transactions")
def transactions(
    user_id: UUID | None = None,
    balance_type: BalanceType | None = None,
    limit: int = 50,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return a user's transactions, newest first."""
    target = user_id or actor.id
    require_view(
        container,
        actor,
        target,
        Permission.VIEW_OWN_BALANCE,
        Permission.VIEW_ALL_BALANCES,
    )
    records = container.ledger_service.list_transactions(
        target, balance_type, limit=limit
    )
    return {"transactions": to_json(records)}


@router.post("/transactions", status_code=201)
def post_transaction(
    body: TransactionRequest,
    background_tasks: BackgroundTasks,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Post a deposit, refund or adjustment."""
    record = container.ledger_service.post_manual_transaction(
        actor,
        body.user_id,
        body.balance_type,
        body.transaction_type,
        body.amount,
        body.description,
    )
    background_tasks.add_task(container.low_balance_monitor.flush)
    return to_json(record)


@router.post("/transactions/{transaction_id}/reverse", status_code=201)
def reverse_transaction(
    transaction_id: UUID,
    body: ReasonRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Post the compensating entry for a transaction."""
    record = container.ledger_service.reverse(actor, transaction_id, body.reason)
    return to_json(record)


@router.post("/freeze")
def freeze_balance(
    body: FreezeRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Freeze one balance of a user."""
    balance = container.ledger_service.freeze(
        actor, body.user_id, body.balance_type, body.reason
    )
    return to_json(balance)


@router.post("/unfreeze")
def unfreeze_balance(
    body: UnfreezeRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Lift a balance freeze."""
    balance = container.ledger_service.unfreeze(
        actor, body.user_id, body.balance_type
    )
    return to_json(balance)


@router.get("/reconcile/{user_id}")
def reconcile(
    user_id: UUID,
    balance_type: BalanceType | None = None,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Compare stored balances with a replay of the transaction log."""
    container.authorizer.require(actor, Permission.VIEW_ALL_BALANCES)
    balance_types = [balance_type] if balance_type else list(BalanceType)
    reports = [
        container.ledger_service.reconcile(user_id, current)
        for current in balance_types
    ]
    return {"reports": [report_to_json(report) for report in reports]}


def report_to_json(report: ReconcileReport) -> dict[str, object]:
    """Serialize a reconcile report with its derived fields."""
    return {
        **to_json(report),
        "drift": str(report.drift),
        "is_consistent": report.is_consistent,
    }
