"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fridge_share.api.barcodes import router as barcodes_router
from fridge_share.api.errors import register_exception_handlers
from fridge_share.api.fridges import router as fridges_router
from fridge_share.api.me import router as me_router
from fridge_share.app_logging import configure_logging
from fridge_share.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting fridge-share (%s)", container.settings.environment)
        yield
        await app.state.container.close_resources()

    app = FastAPI(title="fridge-share", lifespan=lifespan)
    app.state.container = container

    register_exception_handlers(app)
    app.include_router(me_router)
    app.include_router(fridges_router)
    app.include_router(barcodes_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
