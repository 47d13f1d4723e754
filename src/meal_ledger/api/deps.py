"""Request dependencies: container access and caller identity."""

import hmac
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from pydantic_core import to_jsonable_python

from meal_ledger.containers import AppContainer
from meal_ledger.domain.models import UserRecord
from meal_ledger.services.authorization import Permission


def get_container(request: Request) -> AppContainer:
    """Return the container attached to the app."""
    return request.app.state.container


def current_user(
    x_user_id: str | None = Header(default=None),
    container: AppContainer = Depends(get_container),
) -> UserRecord:
    """Resolve the authenticated user from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    try:
        user_id = UUID(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc
    user = container.user_service.find_user(user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return user


def service_principal(
    x_service_token: str | None = Header(default=None),
    container: AppContainer = Depends(get_container),
) -> UserRecord:
    """Authenticate the scheduled job runner."""
    expected = container.settings.service_token
    if not x_service_token or not hmac.compare_digest(x_service_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return container.service_principal


def require_view(
    container: AppContainer,
    actor: UserRecord,
    user_id: UUID,
    own: Permission,
    everyone: Permission,
) -> None:
    """Check read access to ``user_id``'s data."""
    container.authorizer.require(actor, own if actor.id == user_id else everyone)


def to_json(value: object) -> object:
    """Convert domain dataclasses to JSON-compatible values."""
    return to_jsonable_python(value)
