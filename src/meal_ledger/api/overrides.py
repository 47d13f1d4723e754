"""Rule override endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends

from meal_ledger.api.deps import current_user, get_container, to_json
from meal_ledger.api.schemas import OverrideRequest
from meal_ledger.containers import AppContainer
from meal_ledger.domain.models import UserRecord

router = APIRouter(prefix="/overrides", tags=["overrides"])


@router.get("")
def list_overrides(
    active_only: bool = True,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return rule overrides."""
    overrides = container.override_service.list_overrides(actor, active_only)
    return {"overrides": to_json(overrides)}


@router.post("", status_code=201)
def create_override(
    body: OverrideRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Create a rule override."""
    override = container.override_service.create_override(body.to_draft(), actor)
    return to_json(override)


@router.put("/{override_id}")
def update_override(
    override_id: UUID,
    body: OverrideRequest,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Replace the fields of a rule override."""
    override = container.override_service.update_override(
        override_id, body.to_draft(), actor
    )
    return to_json(override)


@router.delete("/{override_id}")
def remove_override(
    override_id: UUID,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> object:
    """Deactivate a rule override; affected cells revert to their record."""
    return to_json(container.override_service.remove_override(override_id, actor))
