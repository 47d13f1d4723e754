"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from meal_ledger.api.admin import router as admin_router
from meal_ledger.api.breakfast import router as breakfast_router
from meal_ledger.api.errors import register_error_handlers
from meal_ledger.api.holidays import router as holidays_router
from meal_ledger.api.jobs import router as jobs_router
from meal_ledger.api.meals import router as meals_router
from meal_ledger.api.months import router as months_router
from meal_ledger.api.overrides import router as overrides_router
from meal_ledger.api.settings import router as settings_router
from meal_ledger.api.wallet import router as wallet_router
from meal_ledger.app_logging import configure_logging
from meal_ledger.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container.settings_service.load()
        logger.info("Meal policy loaded")
        yield
        await app.state.container.close_resources()

    app = FastAPI(title="Meal Ledger", lifespan=lifespan)
    app.state.container = container
    register_error_handlers(app)

    for router in (
        meals_router,
        wallet_router,
        breakfast_router,
        months_router,
        overrides_router,
        holidays_router,
        settings_router,
        admin_router,
        jobs_router,
    ):
        app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
