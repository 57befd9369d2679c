"""FastAPI application factory.

Creates the app with logging middleware, CORS, a lifespan that builds the
AdminConsole from settings, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.advisor_admin.admin.console import AdminConsole
from src.advisor_admin.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.advisor_admin.api.v1.router import router as v1_router
from src.advisor_admin.config import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the console on startup, unmount views on shutdown."""
    log = structlog.get_logger(__name__)
    configure_structlog()

    app.state.console = AdminConsole.from_settings(get_settings())
    log.info("app.started")

    yield

    app.state.console.unmount_all()
    log.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Advisor Admin API",
        version="0.1.0",
        description="Admin data synchronization and filtering for the advisor marketplace",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (outermost -- logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router)

    return app


# Module-level app for uvicorn
app = create_app()
