"""Tests for the staleness-driven sync policy."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.recovery.base import ConnectionRecord, MetricType
from src.recovery.exceptions import PersistenceError
from src.recovery.stores import InMemoryConnectionRegistry, InMemoryProfileStore
from src.recovery.sync.policy import SyncPolicy
from src.recovery.tests.conftest import (
    REFERENCE_TIME,
    TEST_USER_ID,
    FakeProvider,
    metric,
    record,
)


def _policy(provider, connections, store, clock, **kwargs) -> SyncPolicy:
    return SyncPolicy(
        providers={FakeProvider.PROVIDER_TYPE: provider},
        connections=connections,
        store=store,
        clock=clock,
        **kwargs,
    )


async def _connection(registry: InMemoryConnectionRegistry) -> ConnectionRecord:
    (conn,) = await registry.get_connections(TEST_USER_ID)
    return conn


# ---------------------------------------------------------------------------
# Staleness decisions
# ---------------------------------------------------------------------------


class TestStaleness:
    def test_never_synced_is_stale(self, fake_provider, connections, profile_store, clock) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)
        conn = ConnectionRecord(user_id=TEST_USER_ID, provider_type="fake")
        assert policy.is_stale(conn)

    def test_exactly_one_hour_is_fresh(self, fake_provider, connections, profile_store, clock) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)
        conn = ConnectionRecord(
            user_id=TEST_USER_ID,
            provider_type="fake",
            last_synced=REFERENCE_TIME - timedelta(hours=1),
        )
        assert not policy.is_stale(conn)

    def test_past_window_is_stale(self, fake_provider, connections, profile_store, clock) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)
        conn = ConnectionRecord(
            user_id=TEST_USER_ID,
            provider_type="fake",
            last_synced=REFERENCE_TIME - timedelta(hours=1, seconds=1),
        )
        assert policy.is_stale(conn)


# ---------------------------------------------------------------------------
# ensure_fresh
# ---------------------------------------------------------------------------


class TestEnsureFresh:
    @pytest.mark.asyncio
    async def test_no_connection_returns_stored_record(self, fake_provider, profile_store, clock) -> None:
        stored = record(steps=[metric(1000)])
        await profile_store.put_record(TEST_USER_ID, stored)
        policy = _policy(fake_provider, InMemoryConnectionRegistry(), profile_store, clock)

        result = await policy.ensure_fresh(TEST_USER_ID)

        assert result == stored
        assert fake_provider.total_calls == 0

    @pytest.mark.asyncio
    async def test_no_connection_and_no_record(self, fake_provider, profile_store, clock) -> None:
        policy = _policy(fake_provider, InMemoryConnectionRegistry(), profile_store, clock)
        assert await policy.ensure_fresh(TEST_USER_ID) is None
        assert fake_provider.total_calls == 0

    @pytest.mark.asyncio
    async def test_disconnected_provider_is_ignored(self, fake_provider, profile_store, clock) -> None:
        registry = InMemoryConnectionRegistry(
            [ConnectionRecord(user_id=TEST_USER_ID, provider_type="fake", is_connected=False)]
        )
        policy = _policy(fake_provider, registry, profile_store, clock)
        assert await policy.ensure_fresh(TEST_USER_ID) is None
        assert fake_provider.total_calls == 0

    @pytest.mark.asyncio
    async def test_unregistered_provider_is_skipped(self, fake_provider, profile_store, clock) -> None:
        registry = InMemoryConnectionRegistry(
            [
                ConnectionRecord(user_id=TEST_USER_ID, provider_type="fitbit"),
                ConnectionRecord(user_id=TEST_USER_ID, provider_type="fake"),
            ]
        )
        policy = _policy(fake_provider, registry, profile_store, clock)
        result = await policy.ensure_fresh(TEST_USER_ID)
        assert result is not None
        assert policy.last_outcome(TEST_USER_ID).provider_type == "fake"

    @pytest.mark.asyncio
    async def test_stale_connection_syncs_all_categories(
        self, fake_provider, connections, profile_store, clock
    ) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)

        result = await policy.ensure_fresh(TEST_USER_ID)

        assert result is not None
        assert len(result.steps) == 2
        assert len(result.heart_rate) == 5
        assert len(result.sleep) == 3
        assert len(result.workouts) == 1
        assert len(result.calories_burned) == 1
        assert result.last_updated == REFERENCE_TIME
        assert set(fake_provider.calls) == {"steps", "heart_rate", "active_calories", "sleep", "workouts"}
        assert all(
            window == (REFERENCE_TIME - timedelta(days=7), REFERENCE_TIME)
            for window in fake_provider.windows
        )
        assert await profile_store.get_record(TEST_USER_ID) == result
        assert (await _connection(connections)).last_synced == REFERENCE_TIME

    @pytest.mark.asyncio
    async def test_second_call_within_window_makes_no_queries(
        self, fake_provider, connections, profile_store, clock
    ) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)

        first = await policy.ensure_fresh(TEST_USER_ID)
        calls_after_first = fake_provider.total_calls
        second = await policy.ensure_fresh(TEST_USER_ID)

        assert calls_after_first == 5
        assert fake_provider.total_calls == calls_after_first
        assert second == first

    @pytest.mark.asyncio
    async def test_force_bypasses_staleness(self, fake_provider, connections, profile_store, clock) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)
        await policy.ensure_fresh(TEST_USER_ID)
        await policy.ensure_fresh(TEST_USER_ID, force=True)
        assert fake_provider.total_calls == 10

    @pytest.mark.asyncio
    async def test_fresh_connection_without_record_syncs_once(
        self, fake_provider, profile_store, clock
    ) -> None:
        registry = InMemoryConnectionRegistry(
            [
                ConnectionRecord(
                    user_id=TEST_USER_ID,
                    provider_type="fake",
                    last_synced=REFERENCE_TIME - timedelta(minutes=5),
                )
            ]
        )
        policy = _policy(fake_provider, registry, profile_store, clock)

        result = await policy.ensure_fresh(TEST_USER_ID)

        assert result is not None
        assert fake_provider.total_calls == 5
        await policy.ensure_fresh(TEST_USER_ID)
        assert fake_provider.total_calls == 5


# ---------------------------------------------------------------------------
# Fault isolation
# ---------------------------------------------------------------------------


class TestCategoryFailures:
    @pytest.mark.asyncio
    async def test_failing_category_is_empty_others_survive(self, connections, profile_store, clock) -> None:
        provider = FakeProvider(
            metrics={MetricType.STEPS: [metric(4000), metric(2500, hours_ago=5)]},
            failing={"workouts"},
        )
        policy = _policy(provider, connections, profile_store, clock)

        result = await policy.ensure_fresh(TEST_USER_ID)

        assert result is not None
        assert [m.value for m in result.steps] == [4000, 2500]
        assert result.workouts == []
        outcome = policy.last_outcome(TEST_USER_ID)
        assert outcome.failed_categories == ["workouts"]
        assert outcome.sample_counts["steps"] == 2
        assert outcome.status == "partial"
        assert (await _connection(connections)).last_synced == REFERENCE_TIME

    @pytest.mark.asyncio
    async def test_timed_out_category_is_empty(self, connections, profile_store, clock) -> None:
        provider = FakeProvider(
            metrics={MetricType.HEART_RATE: [metric(61)]},
            stalled={"sleep"},
        )
        policy = _policy(provider, connections, profile_store, clock, provider_timeout=0.05)

        result = await policy.ensure_fresh(TEST_USER_ID)

        assert result is not None
        assert result.sleep == []
        assert len(result.heart_rate) == 1
        assert policy.last_outcome(TEST_USER_ID).failed_categories == ["sleep"]

    @pytest.mark.asyncio
    async def test_every_category_failing_still_touches_sync(self, connections, profile_store, clock) -> None:
        provider = FakeProvider(
            failing={"steps", "heart_rate", "active_calories", "sleep", "workouts"}
        )
        policy = _policy(provider, connections, profile_store, clock)

        result = await policy.ensure_fresh(TEST_USER_ID)

        assert result is not None
        assert result.steps == [] and result.sleep == [] and result.workouts == []
        assert policy.last_outcome(TEST_USER_ID).status == "error"
        assert (await _connection(connections)).last_synced == REFERENCE_TIME

    @pytest.mark.asyncio
    async def test_persistence_failure_propagates(self, fake_provider, connections, clock) -> None:
        store = AsyncMock()
        store.get_record.return_value = None
        store.put_record.side_effect = PersistenceError("disk full")
        policy = _policy(fake_provider, connections, store, clock)

        with pytest.raises(PersistenceError):
            await policy.ensure_fresh(TEST_USER_ID)
        assert (await _connection(connections)).last_synced is None


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestInFlightDedup:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_sync(self, connections, profile_store, clock) -> None:
        provider = FakeProvider(metrics={MetricType.STEPS: [metric(100)]}, delay=0.02)
        policy = _policy(provider, connections, profile_store, clock)

        first, second = await asyncio.gather(
            policy.ensure_fresh(TEST_USER_ID),
            policy.ensure_fresh(TEST_USER_ID, force=True),
        )

        assert first == second
        assert provider.total_calls == 5

    @pytest.mark.asyncio
    async def test_next_sync_after_completion_runs_again(self, connections, profile_store, clock) -> None:
        provider = FakeProvider()
        policy = _policy(provider, connections, profile_store, clock)
        await policy.ensure_fresh(TEST_USER_ID, force=True)
        await policy.ensure_fresh(TEST_USER_ID, force=True)
        assert provider.total_calls == 10


# ---------------------------------------------------------------------------
# Manual entry
# ---------------------------------------------------------------------------


class TestAppendMetrics:
    @pytest.mark.asyncio
    async def test_creates_record_when_missing(self, fake_provider, connections, profile_store, clock) -> None:
        policy = _policy(fake_provider, connections, profile_store, clock)

        result = await policy.append_metrics(TEST_USER_ID, MetricType.HEART_RATE, [metric(66)])

        assert [m.value for m in result.heart_rate] == [66]
        assert result.steps == []
        assert (await profile_store.get_record(TEST_USER_ID)).heart_rate == result.heart_rate
        assert fake_provider.total_calls == 0

    @pytest.mark.asyncio
    async def test_appends_to_existing(self, fake_provider, connections, profile_store, clock) -> None:
        await profile_store.put_record(TEST_USER_ID, record(steps=[metric(1000, hours_ago=5)]))
        policy = _policy(fake_provider, connections, profile_store, clock)

        result = await policy.append_metrics(TEST_USER_ID, MetricType.STEPS, [metric(500)])

        assert [m.value for m in result.steps] == [1000, 500]
