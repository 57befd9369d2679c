"""FastAPI dependencies for the admin console HTTP surface."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.advisor_admin.admin.console import AdminConsole
from src.advisor_admin.admin.controller import AdminViewController
from src.advisor_admin.sync.registry import UnknownCollectionError


def get_console(request: Request) -> AdminConsole:
    """Retrieve the AdminConsole from app.state, 503 if not available."""
    console = getattr(request.app.state, "console", None)
    if console is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin console not initialized",
        )
    return console


def get_controller(collection_id: str, request: Request) -> AdminViewController:
    """Resolve the view controller for a path's collection id, 404 if unknown."""
    console = get_console(request)
    try:
        return console.controller(collection_id)
    except UnknownCollectionError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown collection: {collection_id}",
        ) from None
