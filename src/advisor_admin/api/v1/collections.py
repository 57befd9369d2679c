"""REST endpoints over the admin collection views.

Per collection: filtered record view, stats, filter options, create /
update / quick-update / delete, and refresh. Filters are passed as
``filter.<name>=<value>`` query parameters alongside ``search`` and ``sort``.

Gateway failures map to HTTP statuses; a failed fetch is not an HTTP error
but a 200 with ``freshness = "error"`` and the last-known records, so the UI
can render a retry affordance.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from src.advisor_admin.admin.console import AdminConsole
from src.advisor_admin.admin.controller import AdminViewController
from src.advisor_admin.admin.notifications import NotificationLog
from src.advisor_admin.api.deps import get_console, get_controller
from src.advisor_admin.sync.filters import (
    WILDCARD,
    FilterState,
    UnknownFilterError,
    apply_filters,
)
from src.advisor_admin.sync.registry import COLLECTIONS
from src.advisor_admin.sync.schemas import (
    CollectionSnapshot,
    GatewayError,
    GatewayErrorKind,
    MutationResult,
    Record,
)

router = APIRouter(prefix="/api/v1/collections", tags=["collections"])

FILTER_PREFIX = "filter."

ERROR_STATUS: dict[GatewayErrorKind, int] = {
    GatewayErrorKind.VALIDATION_FAILURE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    GatewayErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    GatewayErrorKind.NOT_IMPLEMENTED: status.HTTP_501_NOT_IMPLEMENTED,
    GatewayErrorKind.AUTH_FAILURE: status.HTTP_401_UNAUTHORIZED,
    GatewayErrorKind.NETWORK_FAILURE: status.HTTP_504_GATEWAY_TIMEOUT,
    GatewayErrorKind.SERVER_ERROR: status.HTTP_502_BAD_GATEWAY,
}


# ── Request / Response Schemas ───────────────────────────────────────────────


class CollectionInfo(BaseModel):
    id: str
    label: str
    endpoint: str
    operations: list[str]
    filters: dict[str, list[str]]
    search_fields: list[str]
    sort_options: list[str]


class ErrorBody(BaseModel):
    kind: str
    message: str
    status_code: int | None = None


class RecordsResponse(BaseModel):
    """Visible subset of a collection plus snapshot metadata."""

    collection: str
    source: str | None = None
    freshness: str | None = None
    version: int = 0
    error: ErrorBody | None = None
    total: int = 0
    count: int = 0
    records: list[dict[str, Any]] = Field(default_factory=list)


class OptionsResponse(BaseModel):
    field: str
    values: list[Any]


class QuickUpdateRequest(BaseModel):
    field: str = Field(min_length=1)
    value: Any = None


class NotificationResponse(BaseModel):
    title: str
    description: str
    kind: str
    created_at: str


# ── Helpers ──────────────────────────────────────────────────────────────────


def _error_body(error: GatewayError | None) -> ErrorBody | None:
    if error is None:
        return None
    return ErrorBody(kind=error.kind.value, message=error.message, status_code=error.status_code)


def _raise_for(error: GatewayError) -> None:
    raise HTTPException(
        status_code=ERROR_STATUS.get(error.kind, status.HTTP_502_BAD_GATEWAY),
        detail={"kind": error.kind.value, "message": error.message},
    )


def _filter_state(request: Request, controller: AdminViewController) -> FilterState:
    """Build and validate a FilterState from query parameters."""
    params = request.query_params
    filters = {
        key[len(FILTER_PREFIX):]: value
        for key, value in params.items()
        if key.startswith(FILTER_PREFIX)
    }
    state = FilterState(
        filters=filters,
        search=params.get("search", ""),
        sort=params.get("sort") or None,
    )

    view = controller.config.view
    try:
        view.validate(state)
    except UnknownFilterError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown filter or sort: {exc.name}",
        ) from None

    for name, value in filters.items():
        choices = view.filter_named(name).choices
        if value != WILDCARD and choices and value not in choices:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Invalid value {value!r} for filter {name!r}; expected one of {list(choices)}",
            )
    return state


def _records_response(
    controller: AdminViewController,
    snapshot: CollectionSnapshot | None,
    records: list[Record],
) -> RecordsResponse:
    if snapshot is None:
        return RecordsResponse(collection=controller.key, records=records, count=len(records))
    return RecordsResponse(
        collection=controller.key,
        source=snapshot.source.value,
        freshness=snapshot.freshness.value,
        version=snapshot.version,
        error=_error_body(snapshot.error),
        total=len(snapshot),
        count=len(records),
        records=records,
    )


def _mutation_record(outcome: MutationResult) -> dict[str, Any]:
    if outcome.error is not None:
        _raise_for(outcome.error)
    return outcome.record or {}


# ── Collection Endpoints ─────────────────────────────────────────────────────


@router.get("", response_model=list[CollectionInfo])
async def list_collections() -> list[CollectionInfo]:
    """Describe every registered collection and its view configuration."""
    return [
        CollectionInfo(
            id=config.key,
            label=config.label,
            endpoint=config.endpoint,
            operations=sorted(op.value for op in config.operations),
            filters={f.name: list(f.choices) for f in config.view.filters},
            search_fields=list(config.view.search_fields),
            sort_options=[s.name for s in config.view.sort_options],
        )
        for config in COLLECTIONS.values()
    ]


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    limit: int = 20,
    console: AdminConsole = Depends(get_console),
) -> list[NotificationResponse]:
    """Most recent operator notifications, newest first."""
    if not isinstance(console.notifier, NotificationLog):
        return []
    return [
        NotificationResponse(
            title=n.title,
            description=n.description,
            kind=n.kind.value,
            created_at=n.created_at.isoformat(),
        )
        for n in console.notifier.recent(limit)
    ]


@router.post("/refresh-source")
async def refresh_source(console: AdminConsole = Depends(get_console)) -> dict[str, Any]:
    """Reload the remote's backing store, then refetch firm collections."""
    outcome = await console.refresh_source()
    if outcome.error is not None:
        _raise_for(outcome.error)
    return {"status": "refreshed"}


@router.get("/{collection_id}/records", response_model=RecordsResponse)
async def list_records(
    request: Request,
    controller: AdminViewController = Depends(get_controller),
) -> RecordsResponse:
    """Filtered, searched and sorted view of a collection."""
    state = _filter_state(request, controller)
    snapshot = await controller.load()
    records = apply_filters(snapshot.records, state, controller.config.view) if snapshot else []
    return _records_response(controller, snapshot, records)


@router.get("/{collection_id}/stats")
async def collection_stats(
    controller: AdminViewController = Depends(get_controller),
) -> dict[str, int]:
    """Facet counts over the whole collection."""
    await controller.load()
    return controller.stats()


@router.get("/{collection_id}/options/{field}", response_model=OptionsResponse)
async def filter_options(
    field: str,
    controller: AdminViewController = Depends(get_controller),
) -> OptionsResponse:
    """Distinct values of a field, for populating filter dropdowns."""
    await controller.load()
    return OptionsResponse(field=field, values=controller.filter_options(field))


@router.post("/{collection_id}/refresh", response_model=RecordsResponse)
async def refresh_collection(
    controller: AdminViewController = Depends(get_controller),
) -> RecordsResponse:
    """Invalidate and refetch one collection."""
    snapshot = await controller.refresh()
    records = list(snapshot.records) if snapshot else []
    return _records_response(controller, snapshot, records)


@router.post("/{collection_id}/records", status_code=201)
async def create_record(
    body: dict[str, Any] = Body(...),
    controller: AdminViewController = Depends(get_controller),
) -> dict[str, Any]:
    """Create a record."""
    return _mutation_record(await controller.create(body))


@router.put("/{collection_id}/records/{record_id}")
async def update_record(
    record_id: str,
    body: dict[str, Any] = Body(...),
    controller: AdminViewController = Depends(get_controller),
) -> dict[str, Any]:
    """Replace some fields of a record."""
    await controller.load()
    return _mutation_record(await controller.update(record_id, body))


@router.patch("/{collection_id}/records/{record_id}")
async def quick_update_record(
    record_id: str,
    body: QuickUpdateRequest,
    controller: AdminViewController = Depends(get_controller),
) -> dict[str, Any]:
    """Change a single field (status, published, featured...)."""
    await controller.load()
    return _mutation_record(await controller.quick_update(record_id, body.field, body.value))


@router.delete("/{collection_id}/records/{record_id}", status_code=204)
async def delete_record(
    record_id: str,
    controller: AdminViewController = Depends(get_controller),
) -> Response:
    """Delete a record."""
    outcome = await controller.delete(record_id)
    if outcome.error is not None:
        _raise_for(outcome.error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
