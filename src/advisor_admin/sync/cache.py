"""Client cache and mutation coordinator.

Holds the last-known-good snapshot of each collection and reconciles
mutation outcomes into it.

Per-collection state machine::

    EMPTY -> LOADING -> READY(snapshot) -> LOADING (refetch) -> READY(new)
    EMPTY -> LOADING -> ERROR(reason)   -> LOADING (explicit refresh)

Consistency rules:
- Snapshots are immutable. Every change builds a new CollectionSnapshot and
  publishes it with one assignment, so readers see either the old or the new
  value, never a partial patch.
- Concurrent get() calls for the same collection share one in-flight fetch.
- The synthetic fallback is used only when a fetch *succeeds* with zero
  records. A failed fetch moves the slot to ERROR and keeps the previous
  records (if any) for display.
- Mutation outcomes apply in completion order; the last writer for an id
  wins.
- Results that arrive after discard() belong to a slot that no longer
  exists and are dropped without error.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

import structlog

from src.advisor_admin.sync.fallback import SyntheticFallbackGenerator
from src.advisor_admin.sync.gateway import CollectionGateway
from src.advisor_admin.sync.registry import ReconcileStrategy, get_collection_config
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
    SnapshotSource,
    same_id,
)

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300


class SlotState(str, Enum):
    """Lifecycle of one collection's cache slot."""

    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class _Slot:
    state: SlotState = SlotState.EMPTY
    snapshot: CollectionSnapshot | None = None
    inflight: asyncio.Task[CollectionSnapshot] | None = None
    inflight_epoch: int = 0
    # Bumped by invalidate() and local patches; a fetch started before the bump publishes stale
    epoch: int = 0
    # Count of local patches; a fetch that overlaps one keeps the patched records
    patches: int = 0


def _next_version(slot: _Slot) -> int:
    return slot.snapshot.version + 1 if slot.snapshot is not None else 1

class CacheCoordinator:
    """In-memory snapshot store keyed by collection id.

    Args:
        gateway: Transport used for fetches.
        fallback: Synthetic generator for empty successful fetches, or None
            to publish empty snapshots as-is.
        ttl_seconds: Default time-to-live of a READY snapshot.
        ttl_overrides: Per-collection TTLs keyed by collection id string.
        fetch_timeout: Timeout handed to the gateway on every fetch.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        gateway: CollectionGateway,
        fallback: SyntheticFallbackGenerator | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        ttl_overrides: Mapping[str, float] | None = None,
        fetch_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._fallback = fallback
        self._ttl_seconds = ttl_seconds
        self._ttl_overrides = dict(ttl_overrides or {})
        self._fetch_timeout = fetch_timeout
        self._clock = clock
        self._slots: dict[str, _Slot] = {}

    # ── Reads ───────────────────────────────────────────────────────────────

    def ttl_for(self, collection_id: str | CollectionId) -> float:
        key = get_collection_config(collection_id).key
        return self._ttl_overrides.get(key, self._ttl_seconds)

    def state(self, collection_id: str | CollectionId) -> SlotState:
        slot = self._slots.get(get_collection_config(collection_id).key)
        return slot.state if slot is not None else SlotState.EMPTY

    def peek(self, collection_id: str | CollectionId) -> CollectionSnapshot | None:
        """Return the currently published snapshot without any I/O."""
        slot = self._slots.get(get_collection_config(collection_id).key)
        return slot.snapshot if slot is not None else None

    def is_expired(self, collection_id: str | CollectionId) -> bool:
        snapshot = self.peek(collection_id)
        if snapshot is None or snapshot.fetched_at is None:
            return True
        return self._clock() - snapshot.fetched_at >= self.ttl_for(collection_id)

    async def get(
        self, collection_id: str | CollectionId, *, force: bool = False
    ) -> CollectionSnapshot:
        """Return the current snapshot, fetching when needed.

        A fetch happens when the slot is EMPTY, when the snapshot was
        invalidated or outlived its TTL, or when ``force`` is set. An ERROR
        slot is returned as-is until an explicit refresh (``force=True``).
        A forced read waits out a fetch that started before the latest
        invalidate or patch, then fetches again.

        Raises:
            UnknownCollectionError: If the collection is not registered.
            Exception: Unexpected gateway exceptions (e.g. malformed JSON)
                propagate after the slot is moved to ERROR.
        """
        config = get_collection_config(collection_id)
        slot = self._slots.setdefault(config.key, _Slot())

        while slot.inflight is not None and not slot.inflight.done():
            if not force or slot.inflight_epoch == slot.epoch:
                return await asyncio.shield(slot.inflight)
            # Started before an invalidate or patch, so it cannot satisfy a forced read
            await asyncio.wait({slot.inflight})
            slot = self._slots.setdefault(config.key, _Slot())

        if not force and not self._needs_fetch(config.key, slot):
            return slot.snapshot  # type: ignore[return-value]

        slot.state = SlotState.LOADING
        if slot.snapshot is not None:
            slot.snapshot = slot.snapshot.model_copy(update={"freshness": Freshness.LOADING})

        logger.debug("cache.fetch_started", collection=config.key, forced=force)
        slot.inflight_epoch = slot.epoch
        slot.inflight = asyncio.create_task(
            self._load(config.key, slot, slot.epoch, slot.patches)
        )
        # Waiters may be cancelled (view unmounted); the fetch itself keeps going
        return await asyncio.shield(slot.inflight)

    async def refresh(self, collection_id: str | CollectionId) -> CollectionSnapshot:
        """Invalidate and refetch immediately (the user-triggered retry)."""
        self.invalidate(collection_id)
        return await self.get(collection_id, force=True)

    def _needs_fetch(self, key: str, slot: _Slot) -> bool:
        if slot.state is SlotState.EMPTY or slot.snapshot is None:
            return True
        if slot.state is SlotState.ERROR:
            return False
        if slot.snapshot.freshness is Freshness.STALE:
            return True
        return self.is_expired(key)

    # ── Fetch Pipeline ──────────────────────────────────────────────────────

    async def _load(
        self, key: str, slot: _Slot, epoch: int, patches: int
    ) -> CollectionSnapshot:
        try:
            result = await self._gateway.fetch(key, timeout=self._fetch_timeout)
        except Exception as exc:
            error = GatewayError(kind=GatewayErrorKind.SERVER_ERROR, message=str(exc))
            snapshot = self._error_snapshot(key, slot.snapshot, error)
            snapshot = snapshot.model_copy(update={"version": _next_version(slot)})
            if self._owns(key, slot):
                slot.snapshot, slot.state = snapshot, SlotState.ERROR
            logger.error("cache.fetch_raised", collection=key, error=str(exc))
            raise
        finally:
            slot.inflight = None

        if result.error is not None:
            snapshot = self._error_snapshot(key, slot.snapshot, result.error)
            state = SlotState.ERROR
        elif result.records:
            snapshot = CollectionSnapshot(
                collection_id=key,
                records=tuple(dict(record) for record in result.records),
                freshness=Freshness.FRESH,
                source=SnapshotSource.REMOTE,
            )
            state = SlotState.READY
        elif self._fallback is not None:
            snapshot = self._fallback.generate(key)
            state = SlotState.READY
        else:
            snapshot = CollectionSnapshot(collection_id=key)
            state = SlotState.READY

        update: dict[str, object] = {"version": _next_version(slot)}
        if state is SlotState.READY:
            if slot.patches != patches and slot.snapshot is not None:
                # The fetched records predate a local patch; keep the patched ones
                logger.info("cache.fetch_superseded_by_patch", collection=key)
                snapshot = slot.snapshot
            else:
                update["fetched_at"] = self._clock()
            if slot.epoch != epoch:
                update["freshness"] = Freshness.STALE
        snapshot = snapshot.model_copy(update=update)

        if not self._owns(key, slot):
            logger.info("cache.fetch_result_discarded", collection=key)
            return snapshot

        slot.snapshot, slot.state = snapshot, state
        logger.info(
            "cache.snapshot_published",
            collection=key,
            state=state.value,
            source=snapshot.source.value,
            count=len(snapshot),
            version=snapshot.version,
        )
        return snapshot

    @staticmethod
    def _error_snapshot(
        key: str, previous: CollectionSnapshot | None, error: GatewayError
    ) -> CollectionSnapshot:
        """Keep last-known-good records (never synthesize) and flag the error."""
        if previous is None:
            return CollectionSnapshot(collection_id=key, freshness=Freshness.ERROR, error=error)
        return previous.model_copy(update={"freshness": Freshness.ERROR, "error": error})

    def _owns(self, key: str, slot: _Slot) -> bool:
        return self._slots.get(key) is slot

    # ── Invalidation ────────────────────────────────────────────────────────

    def invalidate(self, collection_id: str | CollectionId) -> None:
        """Force the next get() to refetch. Keeps the snapshot for display."""
        key = get_collection_config(collection_id).key
        slot = self._slots.get(key)
        if slot is None:
            return
        slot.epoch += 1
        if slot.snapshot is not None and slot.state is SlotState.READY:
            slot.snapshot = slot.snapshot.model_copy(update={"freshness": Freshness.STALE})
        logger.debug("cache.invalidated", collection=key)

    def discard(self, collection_id: str | CollectionId) -> None:
        """Drop the slot entirely; in-flight results for it become no-ops."""
        key = get_collection_config(collection_id).key
        if self._slots.pop(key, None) is not None:
            logger.debug("cache.discarded", collection=key)

    # ── Mutations ───────────────────────────────────────────────────────────

    async def apply_mutation_result(
        self,
        collection_id: str | CollectionId,
        intent: MutationIntent,
        outcome: MutationResult,
    ) -> CollectionSnapshot | None:
        """Fold a mutation outcome into the cached snapshot.

        Failures leave the snapshot untouched (the caller reports them).
        Successes either patch the snapshot locally or trigger a refetch,
        depending on the collection's reconcile strategy.

        Returns:
            The snapshot published after reconciliation, or None when the
            slot no longer exists (result arrived after discard).
        """
        config = get_collection_config(collection_id)
        slot = self._slots.get(config.key)

        if not outcome.ok:
            logger.info(
                "cache.mutation_failed_unchanged",
                collection=config.key,
                kind=intent.kind,
                error_kind=outcome.error.kind.value if outcome.error else None,
            )
            return slot.snapshot if slot is not None else None

        if slot is None or slot.snapshot is None:
            logger.info("cache.mutation_result_discarded", collection=config.key, kind=intent.kind)
            return None

        if config.reconcile is ReconcileStrategy.REFETCH:
            return await self.refresh(config.key)

        records = self._patched(slot.snapshot, intent, outcome)
        if records is None:
            return await self.refresh(config.key)

        snapshot = slot.snapshot.model_copy(
            update={"records": records, "version": slot.snapshot.version + 1}
        )
        slot.snapshot = snapshot
        slot.patches += 1
        # Fetches in flight started before this patch; their results publish stale
        slot.epoch += 1
        logger.info(
            "cache.mutation_applied",
            collection=config.key,
            kind=intent.kind,
            record_id=getattr(intent, "id", None) or (outcome.record or {}).get("id"),
            version=snapshot.version,
        )
        return snapshot

    @staticmethod
    def _patched(
        snapshot: CollectionSnapshot,
        intent: MutationIntent,
        outcome: MutationResult,
    ) -> tuple[Record, ...] | None:
        """Return the patched record tuple, or None when only a refetch can reconcile."""
        if isinstance(intent, CreateIntent):
            if outcome.record is None:
                return None
            return (*snapshot.records, dict(outcome.record))

        if isinstance(intent, DeleteIntent):
            return tuple(r for r in snapshot.records if not same_id(r.get("id"), intent.id))

        current = snapshot.find(intent.id)
        if current is None:
            return None
        replacement = {**current, **intent.fields, **(outcome.record or {})}
        return tuple(
            replacement if same_id(r.get("id"), intent.id) else r for r in snapshot.records
        )
