"""Meal status and toggle endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from meal_ledger.api.deps import current_user, get_container, require_view, to_json
from meal_ledger.api.schemas import BulkToggleRequest, CountRequest, ToggleRequest
from meal_ledger.containers import AppContainer
from meal_ledger.domain.models import MealType, UserRecord
from meal_ledger.services.authorization import Permission

router = APIRouter(prefix="/meals", tags=["meals"])


@router.get("/status")
def meal_status(
    meal_type: MealType,
    day: date = Query(alias="date"),
    user_id: UUID | None = None,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Return the effective status of one meal cell."""
    target = user_id or actor.id
    require_view(
        container, actor, target, Permission.VIEW_OWN_MEALS, Permission.VIEW_ALL_MEALS
    )
    status = container.meal_resolver.get_effective_status(
        target, day, meal_type, viewer=actor
    )
    return to_json(status)


@router.get("/calendar")
def meal_calendar(
    meal_type: MealType,
    start_date: date,
    end_date: date,
    user_id: UUID | None = None,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return effective statuses for every day of a range."""
    target = user_id or actor.id
    require_view(
        container, actor, target, Permission.VIEW_OWN_MEALS, Permission.VIEW_ALL_MEALS
    )
    statuses = container.meal_resolver.get_calendar(
        target, start_date, end_date, meal_type, viewer=actor
    )
    return {"days": to_json(statuses)}


@router.put("/toggle")
def toggle_meal(
    body: ToggleRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Set a meal on or off for a user."""
    target = body.user_id or actor.id
    record = container.meal_resolver.toggle(
        actor,
        target,
        body.day,
        body.meal_type,
        body.is_on,
        count=body.count,
        reason=body.reason,
    )
    status = container.meal_resolver.get_effective_status(
        target, body.day, body.meal_type, viewer=actor
    )
    return {"record": to_json(record), "status": to_json(status)}


@router.put("/bulk-toggle")
def bulk_toggle_meals(
    body: BulkToggleRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Toggle a meal over a range; each date reports its own outcome."""
    outcomes = container.meal_resolver.bulk_toggle(
        actor,
        body.user_id or actor.id,
        body.start_date,
        body.end_date,
        body.meal_type,
        body.is_on,
    )
    return {
        "applied": sum(1 for outcome in outcomes if outcome.applied),
        "outcomes": to_json(outcomes),
    }


@router.put("/count")
def set_meal_count(
    body: CountRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Set how many meals a user takes, guests included."""
    record = container.meal_resolver.set_count(
        actor,
        body.user_id or actor.id,
        body.day,
        body.meal_type,
        body.count,
        notes=body.notes,
    )
    return to_json(record)
