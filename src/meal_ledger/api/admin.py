"""Audited correction endpoints for superadmins."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from meal_ledger.api.deps import current_user, get_container, to_json
from meal_ledger.api.schemas import (
    BreakfastForceUpdateRequest,
    CorrectTransactionRequest,
    ForceEditRequest,
    MonthForceUpdateRequest,
    ReasonRequest,
)
from meal_ledger.api.wallet import report_to_json
from meal_ledger.containers import AppContainer
from meal_ledger.domain.corrections import CorrectionEntity
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Permission

router = APIRouter(prefix="/admin", tags=["admin"])


@router.put("/meals/force-edit")
def force_edit_meal(
    body: ForceEditRequest,
    background_tasks: BackgroundTasks,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Edit a meal past cutoff or inside a finalized month."""
    record = container.meal_resolver.force_edit(
        actor,
        body.user_id,
        body.day,
        body.meal_type,
        body.is_on,
        body.count,
        body.reason,
    )
    background_tasks.add_task(container.low_balance_monitor.flush)
    return to_json(record)


@router.put("/months/{month_id}/force-unfinalize")
def force_unfinalize_month(
    month_id: UUID,
    body: ReasonRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Reopen a finalized month."""
    month = container.month_service.force_unfinalize(month_id, body.reason, actor)
    return to_json(month)


@router.put("/months/{month_id}/force-update")
def force_update_month(
    month_id: UUID,
    body: MonthForceUpdateRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Change a month's range or rates regardless of finalization."""
    month = container.month_service.force_update(
        month_id, body.changes(), body.reason, actor
    )
    return to_json(month)


@router.put("/breakfast/{breakfast_id}/force-update")
def force_update_breakfast(
    breakfast_id: UUID,
    body: BreakfastForceUpdateRequest,
    background_tasks: BackgroundTasks,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Replace a breakfast split, refunding and recharging participants."""
    breakfast, report = container.breakfast_service.force_update(
        actor,
        breakfast_id,
        body.reason,
        total_cost=body.total_cost,
        participant_ids=body.participant_ids,
        participant_costs=body.participant_costs,
    )
    background_tasks.add_task(container.low_balance_monitor.flush)
    return {"breakfast": to_json(breakfast), "report": to_json(report)}


@router.put("/breakfast/{breakfast_id}/force-unfinalize")
def force_unfinalize_breakfast(
    breakfast_id: UUID,
    body: ReasonRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Reopen a finalized breakfast for editing."""
    breakfast = container.breakfast_service.force_unfinalize(
        actor, breakfast_id, body.reason
    )
    return to_json(breakfast)


@router.put("/transactions/{transaction_id}/correct")
def correct_transaction(
    transaction_id: UUID,
    body: CorrectTransactionRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Post an adjustment bringing a transaction to a corrected amount."""
    record = container.ledger_service.correct_transaction(
        actor, transaction_id, body.new_amount, body.reason
    )
    return to_json(record)


@router.get("/corrections")
def list_corrections(
    entity: CorrectionEntity | None = None,
    limit: int = 50,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return the correction history, newest first."""
    container.authorizer.require(actor, Permission.FORCE_CORRECTIONS)
    records = container.correction_service.list_recent(entity, limit)
    return {"corrections": to_json(records)}


@router.get("/reconcile")
def reconcile_all(
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return every balance whose log replay disagrees with the stored value."""
    reports = container.ledger_service.reconcile_all(actor)
    return {"inconsistent": [report_to_json(report) for report in reports]}
