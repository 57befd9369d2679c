"""Unit tests for the client cache and mutation coordinator.

Uses the InMemoryGateway test double and a hand-advanced clock. Covers the
slot state machine, TTL, fallback gating (empty vs error), in-flight
deduplication, discard-after-unmount and mutation reconciliation.
"""

from __future__ import annotations

import asyncio

import pytest

from src.advisor_admin.sync.cache import CacheCoordinator, SlotState
from src.advisor_admin.sync.gateway import MalformedResponseError
from src.advisor_admin.sync.schemas import (
    CreateIntent,
    DeleteIntent,
    Freshness,
    GatewayError,
    GatewayErrorKind,
    MutationResult,
    SnapshotSource,
    UpdateIntent,
)
from tests.conftest import make_deal

NETWORK_DOWN = GatewayError(kind=GatewayErrorKind.NETWORK_FAILURE, message="connection refused")


async def _settle() -> None:
    """Let pending tasks run up to their next real wait."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestFetchLifecycle:
    """EMPTY -> LOADING -> READY / ERROR."""

    async def test_first_get_fetches_and_publishes(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        assert cache.state("firm-deals") is SlotState.EMPTY

        snapshot = await cache.get("firm-deals")

        assert cache.state("firm-deals") is SlotState.READY
        assert snapshot.source is SnapshotSource.REMOTE
        assert snapshot.freshness is Freshness.FRESH
        assert snapshot.version == 1
        assert [r["id"] for r in snapshot.records] == list(range(1, 11))

    async def test_cached_read_within_ttl(self, cache, gateway, deals, clock):
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        clock.advance(299)
        await cache.get("firm-deals")
        assert gateway.fetch_calls == ["firm-deals"]

    async def test_refetch_after_ttl(self, cache, gateway, deals, clock):
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        clock.advance(300)
        snapshot = await cache.get("firm-deals")
        assert gateway.fetch_calls == ["firm-deals", "firm-deals"]
        assert snapshot.version == 2

    async def test_per_collection_ttl_override(self, gateway, fallback, clock, deals):
        cache = CacheCoordinator(
            gateway, fallback=fallback, ttl_seconds=300, ttl_overrides={"firm-deals": 10}, clock=clock
        )
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        clock.advance(10)
        await cache.get("firm-deals")
        assert len(gateway.fetch_calls) == 2
        assert cache.ttl_for("blog-posts") == 300

    async def test_invalidate_forces_refetch(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        cache.invalidate("firm-deals")
        assert cache.peek("firm-deals").freshness is Freshness.STALE

        await cache.get("firm-deals")
        assert len(gateway.fetch_calls) == 2

    async def test_admitted_records_are_copies(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        snapshot = await cache.get("firm-deals")
        gateway.data["firm-deals"][0]["firm"] = "Changed upstream"
        assert snapshot.records[0]["firm"] == "Morgan Stanley"


class TestFallbackGating:
    """Synthetic data only for empty successful fetches."""

    async def test_empty_success_uses_fallback(self, cache, gateway):
        gateway.data["practice-listings"] = []
        snapshot = await cache.get("practice-listings")

        assert snapshot.source is SnapshotSource.SYNTHETIC
        assert len(snapshot) == 35
        assert cache.state("practice-listings") is SlotState.READY

    async def test_fetch_error_never_uses_fallback(self, cache, gateway):
        gateway.fetch_errors["practice-listings"] = NETWORK_DOWN
        snapshot = await cache.get("practice-listings")

        assert cache.state("practice-listings") is SlotState.ERROR
        assert snapshot.freshness is Freshness.ERROR
        assert snapshot.source is SnapshotSource.REMOTE
        assert snapshot.error == NETWORK_DOWN
        assert len(snapshot) == 0

    async def test_error_keeps_last_known_good_records(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        gateway.fetch_errors["firm-deals"] = NETWORK_DOWN

        snapshot = await cache.refresh("firm-deals")

        assert snapshot.freshness is Freshness.ERROR
        assert len(snapshot) == 10

    async def test_error_slot_not_refetched_until_refresh(self, cache, gateway):
        gateway.fetch_errors["firm-deals"] = NETWORK_DOWN
        await cache.get("firm-deals")
        await cache.get("firm-deals")
        assert gateway.fetch_calls == ["firm-deals"]

        del gateway.fetch_errors["firm-deals"]
        gateway.data["firm-deals"] = [make_deal()]
        snapshot = await cache.refresh("firm-deals")
        assert cache.state("firm-deals") is SlotState.READY
        assert snapshot.error is None

    async def test_disabled_fallback_publishes_empty(self, gateway, clock):
        cache = CacheCoordinator(gateway, fallback=None, clock=clock)
        snapshot = await cache.get("blog-posts")
        assert len(snapshot) == 0
        assert snapshot.source is SnapshotSource.REMOTE

    async def test_unexpected_exception_propagates_and_marks_error(self, cache, gateway):
        gateway.fetch_exceptions["news-articles"] = MalformedResponseError("not json")

        with pytest.raises(MalformedResponseError):
            await cache.get("news-articles")

        assert cache.state("news-articles") is SlotState.ERROR
        assert cache.peek("news-articles").error.kind is GatewayErrorKind.SERVER_ERROR

    async def test_one_collection_failure_is_isolated(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        gateway.fetch_errors["admin-users"] = NETWORK_DOWN

        users = await cache.get("admin-users")
        firm_deals = await cache.get("firm-deals")

        assert users.freshness is Freshness.ERROR
        assert firm_deals.freshness is Freshness.FRESH


class TestConcurrency:
    """In-flight sharing, LOADING visibility and discard."""

    async def test_concurrent_gets_share_one_fetch(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        gateway.fetch_gate = asyncio.Event()

        first = asyncio.create_task(cache.get("firm-deals"))
        second = asyncio.create_task(cache.get("firm-deals"))
        await asyncio.sleep(0)
        assert cache.state("firm-deals") is SlotState.LOADING

        gateway.fetch_gate.set()
        a, b = await asyncio.gather(first, second)

        assert gateway.fetch_calls == ["firm-deals"]
        assert a == b

    async def test_previous_snapshot_visible_while_loading(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        gateway.fetch_gate = asyncio.Event()

        task = asyncio.create_task(cache.refresh("firm-deals"))
        await asyncio.sleep(0)
        loading = cache.peek("firm-deals")
        assert loading.freshness is Freshness.LOADING
        assert len(loading) == 10

        gateway.fetch_gate.set()
        await task

    async def test_result_after_discard_is_dropped(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        gateway.fetch_gate = asyncio.Event()

        task = asyncio.create_task(cache.get("firm-deals"))
        await asyncio.sleep(0)
        cache.discard("firm-deals")
        gateway.fetch_gate.set()
        await task

        assert cache.peek("firm-deals") is None
        assert cache.state("firm-deals") is SlotState.EMPTY

    async def test_invalidate_during_fetch_publishes_stale(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        gateway.fetch_gate = asyncio.Event()

        task = asyncio.create_task(cache.get("firm-deals"))
        await asyncio.sleep(0)
        cache.invalidate("firm-deals")
        gateway.fetch_gate.set()
        snapshot = await task

        assert snapshot.freshness is Freshness.STALE
        await cache.get("firm-deals")
        assert len(gateway.fetch_calls) == 2

    async def test_delete_during_fetch_is_not_undone(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        await cache.get("firm-deals")
        gateway.fetch_gate = asyncio.Event()

        # The remote still answers with record 7: the fetch predates the delete
        fetch = asyncio.create_task(cache.get("firm-deals", force=True))
        await _settle()
        await cache.apply_mutation_result("firm-deals", DeleteIntent(id=7), MutationResult())
        gateway.fetch_gate.set()
        await fetch

        published = cache.peek("firm-deals")
        assert published.find(7) is None
        assert len(published) == 9
        assert published.freshness is Freshness.STALE
        assert cache.state("firm-deals") is SlotState.READY

        await cache.get("firm-deals")
        assert len(gateway.fetch_calls) == 3

    async def test_forced_get_refetches_after_earlier_fetch(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        gateway.fetch_gate = asyncio.Event()

        first = asyncio.create_task(cache.get("firm-deals"))
        await _settle()
        refreshed = asyncio.create_task(cache.refresh("firm-deals"))
        await _settle()
        gateway.fetch_gate.set()

        assert (await first).freshness is Freshness.STALE
        snapshot = await refreshed
        assert snapshot.freshness is Freshness.FRESH
        assert gateway.fetch_calls == ["firm-deals", "firm-deals"]

    async def test_forced_get_joins_current_fetch(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        gateway.fetch_gate = asyncio.Event()

        first = asyncio.create_task(cache.get("firm-deals"))
        await _settle()
        forced = asyncio.create_task(cache.get("firm-deals", force=True))
        await _settle()
        gateway.fetch_gate.set()

        assert await first == await forced
        assert gateway.fetch_calls == ["firm-deals"]


class TestMutationReconciliation:
    """apply_mutation_result patches, refetches or leaves the snapshot alone."""

    @pytest.fixture
    async def loaded(self, cache, gateway, deals):
        gateway.data["firm-deals"] = deals
        return await cache.get("firm-deals")

    async def test_create_appends_returned_record(self, cache, loaded):
        record = make_deal(id=11, firm="Edward Jones")
        snapshot = await cache.apply_mutation_result(
            "firm-deals", CreateIntent(fields={"firm": "Edward Jones"}), MutationResult(record=record)
        )
        assert snapshot.records[-1] == record
        assert len(snapshot) == 11
        assert snapshot.version == loaded.version + 1

    async def test_update_replaces_matching_id_atomically(self, cache, loaded):
        before = loaded.find(3)
        intent = UpdateIntent(id="3", fields={"firm": "RBC", "notes": "Revised"})
        outcome = MutationResult(record={**before, "firm": "RBC", "notes": "Revised"})

        snapshot = await cache.apply_mutation_result("firm-deals", intent, outcome)

        assert snapshot.find(3)["firm"] == "RBC"
        assert snapshot.find(3)["notes"] == "Revised"
        # The earlier snapshot still shows the whole pre-mutation record
        assert loaded.find(3) == before
        assert [r["id"] for r in snapshot.records] == list(range(1, 11))

    async def test_delete_removes_record(self, cache, loaded):
        snapshot = await cache.apply_mutation_result(
            "firm-deals", DeleteIntent(id=7), MutationResult()
        )
        assert snapshot.find(7) is None
        assert 7 not in snapshot.ids()
        assert len(snapshot) == 9

    async def test_failure_leaves_snapshot_unchanged(self, cache, loaded):
        failure = MutationResult(
            error=GatewayError(kind=GatewayErrorKind.SERVER_ERROR, message="boom", status_code=500)
        )
        snapshot = await cache.apply_mutation_result("firm-deals", DeleteIntent(id=7), failure)
        assert snapshot is cache.peek("firm-deals")
        assert snapshot == loaded

    async def test_refetch_strategy_for_users(self, cache, gateway):
        gateway.data["admin-users"] = [{"id": 1, "username": "ann", "isAdmin": False}]
        await cache.get("admin-users")
        gateway.data["admin-users"][0]["isAdmin"] = True

        snapshot = await cache.apply_mutation_result(
            "admin-users",
            UpdateIntent(id=1, fields={"isAdmin": True}),
            MutationResult(record={"id": 1, "isAdmin": True}),
        )

        assert gateway.fetch_calls == ["admin-users", "admin-users"]
        assert snapshot.find(1)["username"] == "ann"
        assert snapshot.find(1)["isAdmin"] is True

    async def test_update_of_unknown_id_refetches(self, cache, gateway, loaded):
        await cache.apply_mutation_result(
            "firm-deals", UpdateIntent(id=99, fields={"firm": "X"}), MutationResult(record={"id": 99})
        )
        assert gateway.fetch_calls == ["firm-deals", "firm-deals"]

    async def test_result_for_discarded_slot_is_noop(self, cache, loaded):
        cache.discard("firm-deals")
        result = await cache.apply_mutation_result(
            "firm-deals", DeleteIntent(id=7), MutationResult()
        )
        assert result is None
        assert cache.peek("firm-deals") is None

    async def test_completion_order_last_writer_wins(self, cache, loaded):
        first = UpdateIntent(id=2, fields={"notes": "first"})
        second = UpdateIntent(id=2, fields={"notes": "second"})
        # Second submission completes first; the first submission's result lands last
        await cache.apply_mutation_result("firm-deals", second, MutationResult(record=None))
        snapshot = await cache.apply_mutation_result("firm-deals", first, MutationResult(record=None))
        assert snapshot.find(2)["notes"] == "first"
