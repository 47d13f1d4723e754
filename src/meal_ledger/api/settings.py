"""Global meal policy endpoints."""

from fastapi import APIRouter, Depends

from meal_ledger.adapters.supabase_settings_repository import settings_to_document
from meal_ledger.api.deps import current_user, get_container
from meal_ledger.containers import AppContainer
from meal_ledger.domain.models import UserRecord
from meal_ledger.domain.policy import GlobalSettings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
def read_settings(
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Return the cached meal policy."""
    return settings_to_document(container.settings_service.current())


@router.put("")
def update_settings(
    body: GlobalSettings,
    actor: UserRecord = Depends(current_user),
    container: AppContainer = Depends(get_container),
) -> dict[str, object]:
    """Validate, persist and reload the meal policy."""
    return settings_to_document(container.settings_service.update(actor, body))
