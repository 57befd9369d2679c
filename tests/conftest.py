"""Shared fixtures for the admin sync layer tests.

Provides:
- InMemoryGateway: CollectionGateway test double with scriptable failures
  and an optional gate that holds fetches in flight
- FakeClock: manually advanced monotonic clock for TTL tests
- Seeded fallback generator pinned to a fixed "now"
- Record factories for listings and deals
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from src.advisor_admin.admin.notifications import NotificationLog
from src.advisor_admin.sync.cache import CacheCoordinator
from src.advisor_admin.sync.fallback import SyntheticFallbackGenerator
from src.advisor_admin.sync.gateway import CollectionGateway, not_implemented
from src.advisor_admin.sync.registry import get_collection_config
from src.advisor_admin.sync.schemas import (
    CollectionId,
    CreateIntent,
    DeleteIntent,
    FetchResult,
    GatewayError,
    GatewayErrorKind,
    MutationKind,
    MutationResult,
    UpdateIntent,
    same_id,
)

FIXED_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemoryGateway(CollectionGateway):
    """In-memory CollectionGateway for testing without a remote API."""

    def __init__(self, data: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.data: dict[str, list[dict[str, Any]]] = {
            key: [dict(r) for r in records] for key, records in (data or {}).items()
        }
        self.fetch_errors: dict[str, GatewayError] = {}
        self.fetch_exceptions: dict[str, Exception] = {}
        self.mutation_errors: dict[str, GatewayError] = {}
        self.refresh_error: GatewayError | None = None
        self.fetch_calls: list[str] = []
        self.mutations: list[tuple[str, Any]] = []
        self.refresh_calls = 0
        # When set, fetches wait on it before answering
        self.fetch_gate: asyncio.Event | None = None
        self.mutation_gate: asyncio.Event | None = None
        self._next_id = 1000

    async def fetch(self, collection_id, *, timeout=None) -> FetchResult:
        key = get_collection_config(collection_id).key
        self.fetch_calls.append(key)
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if key in self.fetch_exceptions:
            raise self.fetch_exceptions[key]
        if key in self.fetch_errors:
            return FetchResult(error=self.fetch_errors[key])
        return FetchResult(records=[dict(r) for r in self.data.get(key, [])])

    async def mutate(self, collection_id, intent, *, timeout=None) -> MutationResult:
        config = get_collection_config(collection_id)
        key = config.key
        self.mutations.append((key, intent))
        if self.mutation_gate is not None:
            await self.mutation_gate.wait()

        kind = MutationKind(intent.kind)
        if not config.supports(kind):
            return MutationResult(error=not_implemented(key, kind))
        if key in self.mutation_errors:
            return MutationResult(error=self.mutation_errors[key])

        records = self.data.setdefault(key, [])
        if isinstance(intent, CreateIntent):
            self._next_id += 1
            record = {"id": str(self._next_id), **intent.fields}
            records.append(record)
            return MutationResult(record=dict(record))

        index = next(
            (i for i, r in enumerate(records) if same_id(r.get("id"), intent.id)), None
        )
        if index is None:
            return MutationResult(
                error=GatewayError(
                    kind=GatewayErrorKind.NOT_FOUND,
                    message=f"Record {intent.id} not found",
                    status_code=404,
                )
            )
        if isinstance(intent, UpdateIntent):
            records[index] = {**records[index], **intent.fields}
            return MutationResult(record=dict(records[index]))

        assert isinstance(intent, DeleteIntent)
        del records[index]
        return MutationResult()

    async def refresh_source(self, *, timeout=None) -> MutationResult:
        self.refresh_calls += 1
        if self.refresh_error is not None:
            return MutationResult(error=self.refresh_error)
        return MutationResult(record={"success": True})


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Record Factories ─────────────────────────────────────────────────────────


def make_listing(**overrides: Any) -> dict[str, Any]:
    """Create a practice listing record with sensible defaults."""
    record = {
        "id": "1",
        "title": "Miami Wealth Management Practice",
        "location": "Miami, FL",
        "aum": "$135M",
        "revenue": "$1.2M",
        "price": "$3.6M",
        "status": "Active",
        "type": "Full Practice Sale",
        "description": "Established practice with strong client relationships.",
        "highlighted": False,
        "date": "May 20, 2026",
    }
    record.update(overrides)
    return record


def make_deal(**overrides: Any) -> dict[str, Any]:
    """Create a firm deal record with sensible defaults."""
    record = {
        "id": 1,
        "firm": "Morgan Stanley",
        "upfrontMin": 150,
        "upfrontMax": 200,
        "backendMin": 20,
        "backendMax": 60,
        "totalDealMin": 170,
        "totalDealMax": 260,
        "notes": "Standard recruiting package",
    }
    record.update(overrides)
    return record


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fallback() -> SyntheticFallbackGenerator:
    return SyntheticFallbackGenerator(seed=7, clock=lambda: FIXED_NOW)


@pytest.fixture
def cache(gateway, fallback, clock) -> CacheCoordinator:
    return CacheCoordinator(gateway, fallback=fallback, ttl_seconds=300, clock=clock)


@pytest.fixture
def notifications() -> NotificationLog:
    return NotificationLog()


@pytest.fixture
def deals() -> list[dict[str, Any]]:
    """Ten firm deals with ids 1..10."""
    firms = ["Morgan Stanley", "UBS Wealth", "Raymond James", "LPL Financial", "RBC"]
    return [
        make_deal(id=i, firm=firms[(i - 1) % len(firms)], totalDealMax=200 + i * 10)
        for i in range(1, 11)
    ]


@pytest.fixture
def listings_key() -> str:
    return CollectionId.PRACTICE_LISTINGS.value
