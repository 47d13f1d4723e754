"""Month settings and charge endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from meal_ledger.api.deps import current_user, get_container, to_json
from meal_ledger.api.schemas import MonthRequest
from meal_ledger.containers import AppContainer
from meal_ledger.domain.charges import ChargeStatus, MonthChargeReport
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Permission

router = APIRouter(prefix="/months", tags=["months"])


@router.get("")
def list_months(
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return configured billing months."""
    container.authorizer.require(actor, Permission.VIEW_MONTH_SETTINGS)
    return {"months": to_json(container.month_service.list_months())}


@router.post("", status_code=201)
def save_month(
    body: MonthRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Create or edit a month's range and rates."""
    month = container.month_service.save(
        actor,
        body.year,
        body.month,
        body.start_date,
        body.end_date,
        body.lunch_rate,
        body.dinner_rate,
    )
    return to_json(month)


@router.get("/rate")
def active_rate(
    day: date = Query(alias="date"),
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Return the lunch and dinner rates in force on a date."""
    container.authorizer.require(actor, Permission.VIEW_MONTH_SETTINGS)
    return to_json(container.month_service.get_active_rate(day))


@router.put("/{month_id}/finalize")
def finalize_month(
    month_id: UUID,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Lock a month against further edits."""
    return to_json(container.month_service.finalize(month_id, actor))


@router.post("/{month_id}/charges")
def run_month_charges(
    month_id: UUID,
    background_tasks: BackgroundTasks,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Post month-end lunch and dinner charges."""
    report = container.charge_application.post_month_end_charges(month_id, actor)
    background_tasks.add_task(container.low_balance_monitor.flush)
    return charge_report_to_json(report)


def charge_report_to_json(report: MonthChargeReport) -> dict[str, object]:
    """Serialize a month charge report with per-status counts."""
    return {
        "month_id": str(report.month_id),
        "cancelled": report.cancelled,
        "summary": {status.value: report.count(status) for status in ChargeStatus},
        "charges": to_json(report.charges),
    }
