"""Holiday calendar endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends

from meal_ledger.api.deps import current_user, get_container, to_json
from meal_ledger.api.schemas import HolidayRequest, HolidayUpdateRequest
from meal_ledger.containers import AppContainer
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Permission

router = APIRouter(prefix="/holidays", tags=["holidays"])


@router.get("")
def list_holidays(
    start_date: date | None = None,
    end_date: date | None = None,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return active holidays, optionally limited to a range."""
    container.authorizer.require(actor, Permission.VIEW_HOLIDAYS)
    holidays = container.holiday_service.list_holidays(start_date, end_date)
    return {"holidays": to_json(holidays)}


@router.post("", status_code=201)
def create_holiday(
    body: HolidayRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Add a holiday by hand."""
    holiday = container.holiday_service.create_holiday(
        actor,
        body.name,
        body.type,
        day=body.day,
        is_recurring=body.is_recurring,
        recurring_month=body.recurring_month,
        recurring_day=body.recurring_day,
    )
    return to_json(holiday)


@router.put("/{holiday_id}")
def update_holiday(
    holiday_id: UUID,
    body: HolidayUpdateRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Edit a holiday."""
    holiday = container.holiday_service.update_holiday(
        actor, holiday_id, body.changes()
    )
    return to_json(holiday)


@router.delete("/{holiday_id}")
def delete_holiday(
    holiday_id: UUID,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Deactivate a holiday."""
    return to_json(container.holiday_service.deactivate_holiday(actor, holiday_id))
