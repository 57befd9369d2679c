"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). Readiness reports
the cache state of every collection; it never triggers a remote fetch.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.advisor_admin.config import get_settings
from src.advisor_admin.sync.registry import COLLECTIONS

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check -- no external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: the console is initialized; lists per-collection cache state."""
    console = getattr(request.app.state, "console", None)
    if console is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "starting", "collections": {}},
        )

    collections = {key.value: console.cache.state(key).value for key in COLLECTIONS}
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "ready", "collections": collections},
    )
