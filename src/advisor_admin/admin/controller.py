"""Admin view controller -- one per entity type.

Orchestrates the sync layer for a single collection view:

    load -> (fallback on empty) -> filter/search/sort -> render
    action -> form validation -> MutationIntent -> gateway -> cache reconcile

Exposes ``selected_record``, ``is_dialog_open`` and ``visible_records()`` to
the UI, and reports every outcome through the notifier.

Error boundary: gateway failures arrive as GatewayError values. Anything
unexpected raised below the controller (e.g. a malformed JSON body) is
converted here into a ``server_error`` so one collection's failure never
crashes the console.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from src.advisor_admin.admin.dialogs import DialogState
from src.advisor_admin.admin.forms import validate_create, validate_update
from src.advisor_admin.admin.notifications import NotificationKind, Notifier, log_notifier
from src.advisor_admin.sync.cache import CacheCoordinator
from src.advisor_admin.sync.filters import (
    FilterState,
    apply_filters,
    distinct_values,
    facet_counts,
)
from src.advisor_admin.sync.gateway import CollectionGateway
from src.advisor_admin.sync.registry import CollectionConfig, get_collection_config
from src.advisor_admin.sync.schemas import (
    CollectionId,
    CollectionSnapshot,
    CreateIntent,
    DeleteIntent,
    Freshness,
    GatewayError,
    GatewayErrorKind,
    MutationIntent,
    MutationResult,
    Record,
    RecordId,
    UpdateIntent,
    same_id,
)

logger = structlog.get_logger(__name__)

_VERBS = {"create": "created", "update": "updated", "delete": "deleted"}


def server_error(exc: BaseException) -> GatewayError:
    """Convert an unexpected exception into a displayable server error."""
    return GatewayError(
        kind=GatewayErrorKind.SERVER_ERROR,
        message=f"Unexpected error: {exc}" if str(exc) else f"Unexpected {type(exc).__name__}",
    )


def validation_error(exc: ValidationError) -> GatewayError:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'form'}: {err['msg']}" for err in exc.errors()
    )
    return GatewayError(kind=GatewayErrorKind.VALIDATION_FAILURE, message=details)


class AdminViewController:
    """Controller for one collection view of the admin console.

    Args:
        collection_id: The collection this view shows.
        cache: Shared cache coordinator.
        gateway: Transport used for mutations.
        notify: Notification callback for success and failure messages.
    """

    def __init__(
        self,
        collection_id: str | CollectionId,
        cache: CacheCoordinator,
        gateway: CollectionGateway,
        notify: Notifier = log_notifier,
    ) -> None:
        self.config: CollectionConfig = get_collection_config(collection_id)
        self._cache = cache
        self._gateway = gateway
        self._notify = notify
        self.filter_state = FilterState()
        self.dialog = DialogState()
        self.selected_record: Record | None = None
        self.mounted = True
        # Version of the last ERROR snapshot reported, so a failure is announced once
        self._reported_error_version: int | None = None
        self._log = logger.bind(collection=self.config.key)

    # ── Read Side ───────────────────────────────────────────────────────────

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def is_dialog_open(self) -> bool:
        return self.dialog.is_open

    @property
    def snapshot(self) -> CollectionSnapshot | None:
        return self._cache.peek(self.key)

    async def load(self, *, force: bool = False) -> CollectionSnapshot | None:
        """Fetch (or reuse) the collection snapshot.

        On failure the previous records stay visible and an error
        notification is sent once per failed fetch; the snapshot's freshness
        is ``error``.
        """
        try:
            snapshot = await self._cache.get(self.key, force=force)
        except Exception as exc:
            self._log.error("controller.load_raised", error=str(exc))
            failed = self._cache.peek(self.key)
            if failed is None or failed.version != self._reported_error_version:
                self._reported_error_version = failed.version if failed is not None else None
                self._report_failure(f"Failed to load {self._plural}", server_error(exc))
            return failed

        if (
            snapshot.freshness is Freshness.ERROR
            and snapshot.error is not None
            and snapshot.version != self._reported_error_version
        ):
            self._reported_error_version = snapshot.version
            self._report_failure(f"Failed to load {self._plural}", snapshot.error)
        return snapshot

    async def refresh(self) -> CollectionSnapshot | None:
        """User-triggered refresh: invalidate and refetch."""
        self._cache.invalidate(self.key)
        snapshot = await self.load(force=True)
        if snapshot is not None and snapshot.freshness is Freshness.FRESH:
            self._notify("Data refreshed", f"{self.config.label} data has been reloaded", NotificationKind.INFO)
        return snapshot

    def visible_records(self) -> list[Record]:
        """Current snapshot filtered, searched and sorted by ``filter_state``."""
        snapshot = self.snapshot
        if snapshot is None:
            return []
        return apply_filters(snapshot.records, self.filter_state, self.config.view)

    def stats(self) -> dict[str, int]:
        snapshot = self.snapshot
        return facet_counts(snapshot.records if snapshot else (), self.config.facets)

    def filter_options(self, field_name: str) -> list[Any]:
        """Distinct values of a field across the whole snapshot."""
        snapshot = self.snapshot
        return distinct_values(snapshot.records if snapshot else (), field_name)

    # ── Filter State ────────────────────────────────────────────────────────

    def set_filter(self, name: str, value: str) -> FilterState:
        """Raises UnknownFilterError for a filter the view does not define."""
        self.config.view.filter_named(name)
        self.filter_state = self.filter_state.with_filter(name, value)
        return self.filter_state

    def set_search(self, search: str) -> FilterState:
        self.filter_state = self.filter_state.with_search(search)
        return self.filter_state

    def set_sort(self, sort: str | None) -> FilterState:
        if sort is not None:
            self.config.view.sort_named(sort)
        self.filter_state = self.filter_state.with_sort(sort)
        return self.filter_state

    def replace_filter_state(self, state: FilterState) -> FilterState:
        self.config.view.validate(state)
        self.filter_state = state
        return state

    def clear_filters(self) -> FilterState:
        self.filter_state = self.filter_state.cleared()
        return self.filter_state

    # ── Selection & Dialogs ─────────────────────────────────────────────────

    def select(self, record_id: RecordId | None) -> Record | None:
        snapshot = self.snapshot
        if record_id is None or snapshot is None:
            self.selected_record = None
        else:
            self.selected_record = snapshot.find(record_id)
        return self.selected_record

    def open_create(self) -> DialogState:
        self.dialog = self.dialog.open_for_create()
        self.selected_record = None
        return self.dialog

    def open_edit(self, record_id: RecordId) -> DialogState:
        """Open the edit dialog for a record.

        Raises:
            KeyError: If no record with that id is in the snapshot.
        """
        record = self.select(record_id)
        if record is None:
            raise KeyError(f"{self.key} has no record with id {record_id!r}")
        self.dialog = self.dialog.open_for_edit(record)
        return self.dialog

    def cancel_dialog(self) -> DialogState:
        self.dialog = self.dialog.cancel()
        self.selected_record = None
        return self.dialog

    async def submit(self, payload: dict[str, Any]) -> MutationResult:
        """Submit the open dialog.

        Validates the form first; an invalid payload never reaches the
        gateway and the dialog stays open with the error.
        """
        editing = self.dialog.record
        submitting = self.dialog.submit(payload)

        try:
            if editing is None:
                intent: CreateIntent | UpdateIntent = CreateIntent(
                    fields=validate_create(self.key, payload)
                )
            else:
                intent = UpdateIntent(
                    id=editing["id"], fields=validate_update(self.key, editing, payload)
                )
        except ValidationError as exc:
            error = validation_error(exc)
            self.dialog = submitting.fail(error)
            self._report_failure(f"Invalid {self.config.label.lower()}", error)
            return MutationResult(error=error)

        self.dialog = submitting
        outcome = await self._mutate(intent)
        if not self.mounted:
            return outcome

        if outcome.ok:
            self.dialog = self.dialog.succeed()
            self.selected_record = None
        else:
            self.dialog = self.dialog.fail(outcome.error)  # type: ignore[arg-type]
        return outcome

    # ── Direct Actions ──────────────────────────────────────────────────────

    async def create(self, fields: dict[str, Any]) -> MutationResult:
        try:
            intent = CreateIntent(fields=validate_create(self.key, fields))
        except ValidationError as exc:
            return self._rejected(exc)
        return await self._mutate(intent)

    async def update(self, record_id: RecordId, fields: dict[str, Any]) -> MutationResult:
        current = self.snapshot.find(record_id) if self.snapshot else None
        try:
            changes = validate_update(self.key, current or {"id": record_id}, fields)
        except ValidationError as exc:
            return self._rejected(exc)
        return await self._mutate(UpdateIntent(id=record_id, fields=changes))

    async def quick_update(self, record_id: RecordId, field_name: str, value: Any) -> MutationResult:
        """Single-field update from a row action (status change, publish toggle)."""
        return await self.update(record_id, {field_name: value})

    async def delete(self, record_id: RecordId) -> MutationResult:
        outcome = await self._mutate(DeleteIntent(id=record_id))
        if outcome.ok and self.selected_record is not None and same_id(
            self.selected_record.get("id"), record_id
        ):
            self.selected_record = None
        return outcome

    def unmount(self) -> None:
        """Leave the view: later results are discarded and the slot is dropped."""
        self.mounted = False
        self.dialog = DialogState()
        self.selected_record = None
        self._cache.discard(self.key)
        self._log.debug("controller.unmounted")

    # ── Internals ───────────────────────────────────────────────────────────

    @property
    def _plural(self) -> str:
        return f"{self.config.label.lower()}s"

    async def _mutate(self, intent: MutationIntent) -> MutationResult:
        try:
            outcome = await self._gateway.mutate(self.key, intent)
        except Exception as exc:
            self._log.error("controller.mutation_raised", kind=intent.kind, error=str(exc))
            outcome = MutationResult(error=server_error(exc))

        if not self.mounted:
            self._log.info("controller.result_after_unmount", kind=intent.kind)
            return outcome

        if not outcome.ok:
            self._report_failure(f"Failed to {intent.kind} {self.config.label.lower()}", outcome.error)
            return outcome

        try:
            await self._cache.apply_mutation_result(self.key, intent, outcome)
        except Exception as exc:
            # The remote accepted the change; only the local reconcile failed
            self._log.error("controller.reconcile_raised", kind=intent.kind, error=str(exc))
            self._cache.invalidate(self.key)
            self._report_failure("Saved, but the list could not be refreshed", server_error(exc))
            return outcome

        self._notify(
            f"{self.config.label} {_VERBS[intent.kind]}",
            f"The {self.config.label.lower()} was {_VERBS[intent.kind]} successfully",
            NotificationKind.INFO,
        )
        return outcome

    def _rejected(self, exc: ValidationError) -> MutationResult:
        error = validation_error(exc)
        self._report_failure(f"Invalid {self.config.label.lower()}", error)
        return MutationResult(error=error)

    def _report_failure(self, title: str, error: GatewayError | None) -> None:
        if error is None:
            return
        if error.kind is GatewayErrorKind.NOT_IMPLEMENTED:
            title = "Not available yet"
        self._log.warning("controller.operation_failed", title=title, kind=error.kind.value)
        self._notify(title, error.message, NotificationKind.ERROR)
