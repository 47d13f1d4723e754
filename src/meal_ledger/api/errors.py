"""Map domain errors to JSON responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from meal_ledger.domain.errors import (
    BalanceFrozenError,
    ConflictError,
    MealLedgerError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; BalanceFrozenError must precede its StateError base.
_STATUS_CODES: list[tuple[type[MealLedgerError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (BalanceFrozenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (StateError, status.HTTP_409_CONFLICT),
]


def status_code_for(exc: MealLedgerError) -> int:
    """Return the HTTP status for a domain error."""
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(exc: MealLedgerError) -> dict[str, object]:
    """Build the JSON error document for a domain error."""
    return {
        "error": exc.code,
        "message": exc.message,
        "state": exc.state if isinstance(exc, StateError) else None,
        "details": jsonable_encoder(exc.details),
    }


def register_error_handlers(app: FastAPI) -> None:
    """Install the domain, validation and fallback handlers."""

    @app.exception_handler(MealLedgerError)
    async def handle_domain_error(
        request: Request, exc: MealLedgerError
    ) -> JSONResponse:
        return JSONResponse(status_code=status_code_for(exc), content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": ValidationError.code,
                "message": "Invalid request",
                "state": None,
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error in %s %s",
            request.method,
            request.url.path,
            extra={
                "user_id": request.headers.get("x-user-id"),
                "operation": f"{request.method} {request.url.path}",
                "inputs": dict(request.query_params),
            },
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal_error"},
        )
