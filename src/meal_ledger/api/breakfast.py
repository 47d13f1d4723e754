"""Breakfast entry endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from meal_ledger.api.deps import current_user, get_container, to_json
from meal_ledger.api.schemas import (
    BreakfastRequest,
    BreakfastUpdateRequest,
    ReasonRequest,
)
from meal_ledger.containers import AppContainer
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Permission

router = APIRouter(prefix="/breakfast", tags=["breakfast"])


@router.get("")
def list_breakfasts(
    start_date: date,
    end_date: date,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return breakfasts in a date range."""
    entries = container.breakfast_service.list_breakfasts(actor, start_date, end_date)
    return {"breakfasts": to_json(entries)}


@router.get("/{breakfast_id}")
def get_breakfast(
    breakfast_id: UUID,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Return one breakfast entry."""
    container.authorizer.require(actor, Permission.VIEW_BREAKFAST)
    return to_json(container.breakfast_service.get(breakfast_id))


@router.post("", status_code=201)
def submit_breakfast(
    body: BreakfastRequest,
    background_tasks: BackgroundTasks,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Record a day's breakfast; deducts right away under auto-deduct."""
    breakfast, report = container.breakfast_service.submit(
        actor,
        body.day,
        total_cost=body.total_cost,
        participant_ids=body.participant_ids,
        participant_costs=body.participant_costs,
        description=body.description,
    )
    if report is not None:
        background_tasks.add_task(container.low_balance_monitor.flush)
    return {"breakfast": to_json(breakfast), "report": to_json(report)}


@router.put("/{breakfast_id}")
def update_breakfast(
    breakfast_id: UUID,
    body: BreakfastUpdateRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Edit a breakfast that nobody has been charged for yet."""
    breakfast = container.breakfast_service.update(
        actor,
        breakfast_id,
        total_cost=body.total_cost,
        participant_ids=body.participant_ids,
        participant_costs=body.participant_costs,
        description=body.description,
    )
    return to_json(breakfast)


@router.post("/{breakfast_id}/deduct")
def deduct_breakfast(
    breakfast_id: UUID,
    background_tasks: BackgroundTasks,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Charge the participants who have not been charged yet."""
    report = container.breakfast_service.deduct(actor, breakfast_id)
    background_tasks.add_task(container.low_balance_monitor.flush)
    return {
        "report": to_json(report),
        "failed": [str(outcome.user_id) for outcome in report.failures],
    }


@router.post("/{breakfast_id}/reverse")
def reverse_breakfast(
    breakfast_id: UUID,
    body: ReasonRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Refund all participants and mark the entry reversed."""
    breakfast = container.breakfast_service.reverse(actor, breakfast_id, body.reason)
    return to_json(breakfast)
