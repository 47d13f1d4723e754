"""Endpoints for the scheduled job runner."""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status

from meal_ledger.api.deps import get_container, service_principal, to_json
from meal_ledger.api.schemas import HolidaySyncRequest
from meal_ledger.containers import AppContainer
from meal_ledger.domain.charges import ChargeStatus
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/holiday-sync")
async def holiday_sync(
    body: HolidaySyncRequest,
    principal: UserRecord = Depends(service_principal),
    container: AppContainer = Depends(get_container),
) -> object:
    """Pull the year's public holidays from the feed."""
    year = body.year or container.meal_resolver.local_now().year
    result = await container.holiday_service.sync_holidays(year, principal)
    return to_json(result)


@router.post("/month-end-charges/{month_id}", status_code=status.HTTP_202_ACCEPTED)
def month_end_charges(
    month_id: UUID,
    background_tasks: BackgroundTasks,
    principal: UserRecord = Depends(service_principal),
    container: AppContainer = Depends(get_container),
) -> dict[str, str]:
    """Queue the month-end charge run."""
    container.authorizer.require(principal, Permission.RUN_CHARGES)
    month = container.month_service.get(month_id)
    background_tasks.add_task(run_month_end_charges, container, month.id, principal)
    background_tasks.add_task(container.low_balance_monitor.flush)
    return {"status": "accepted", "month_id": str(month.id)}


def run_month_end_charges(
    container: AppContainer, month_id: UUID, principal: UserRecord
) -> None:
    """Run the charges outside the request; the report goes to the log."""
    try:
        report = container.charge_application.post_month_end_charges(
            month_id, principal
        )
    except Exception:
        logger.exception(
            "Month-end charge job failed", extra={"month_id": str(month_id)}
        )
    else:
        logger.info(
            "Month-end charge job for %s finished: %s charged, %s failed",
            month_id,
            report.count(ChargeStatus.CHARGED),
            report.count(ChargeStatus.FAILED),
        )
