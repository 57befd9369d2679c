"""Request logging and structlog setup for the admin API.

Every request gets a request id (the caller's X-Request-ID, or a new UUID)
bound into structlog's context variables together with the collection id
taken from the path. Gateway, cache and controller events logged while the
request is handled therefore carry both without passing them around.

Production renders JSON lines; other environments use the console renderer.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.advisor_admin.config import Environment, get_settings
from src.advisor_admin.sync.schemas import CollectionId

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_COLLECTION_PATH = re.compile(r"^/api/v\d+/collections/(?P<collection>[a-z-]+)(?:/|$)")
_KNOWN_COLLECTIONS = frozenset(c.value for c in CollectionId)


def configure_structlog() -> None:
    """Route structlog through stdlib logging at the configured level."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _collection_from_path(path: str) -> str | None:
    match = _COLLECTION_PATH.match(path)
    if match is None or match.group("collection") not in _KNOWN_COLLECTIONS:
        return None
    return match.group("collection")


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log one ``request_completed`` (or ``request_error``) event per request.

    The request id is echoed back in the X-Request-ID response header.
    4xx responses log at warning, 5xx at error.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        collection = _collection_from_path(request.url.path)
        if collection is not None:
            structlog.contextvars.bind_contextvars(collection=collection)
        started = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        if response.status_code >= 500:
            emit = logger.error
        elif response.status_code >= 400:
            emit = logger.warning
        else:
            emit = logger.info
        emit(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        return response
