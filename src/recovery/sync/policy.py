"""Sync policy: decide when to re-query a device data provider and persist the result.

Workflow for ``ensure_fresh(user_id)``:
1. Find the user's active connection (first connected provider we can query)
2. No connection → return whatever the profile store already has
3. Stale (never synced, or older than the staleness window) or forced → sync
4. Fresh but nothing stored → sync exactly once
5. Otherwise → return the stored record

A sync pass queries five categories concurrently over a trailing window
(default 7 days).  Each category is bounded by a timeout and fails on its
own: a failing category is logged and treated as empty, never aborting the
others.  The fetched window replaces the stored record wholesale, then the
connection's ``last_synced`` is touched whether or not every category
succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Mapping

from src.config import Settings, get_settings
from src.recovery.base import (
    CanonicalHealthRecord,
    ConnectionRecord,
    ConnectionRegistry,
    DeviceDataProvider,
    HealthMetric,
    MetricType,
    ProfileStore,
    ensure_utc,
    utc_now,
)

logger = logging.getLogger("restwell.recovery.sync")

CATEGORIES = ("steps", "heart_rate", "sleep", "workouts", "calories_burned")


@dataclass
class SyncOutcome:
    """Result of a single sync pass.

    Attributes:
        user_id:           User that was synced.
        provider_type:     Provider slug that was queried.
        sample_counts:     Samples returned per category.
        failed_categories: Categories whose query raised or timed out.
        synced_at:         UTC timestamp written to the connection record.
    """

    user_id: str
    provider_type: str
    sample_counts: dict[str, int] = field(default_factory=dict)
    failed_categories: list[str] = field(default_factory=list)
    synced_at: datetime = field(default_factory=utc_now)

    @property
    def status(self) -> str:
        if not self.failed_categories:
            return "success"
        if len(self.failed_categories) == len(CATEGORIES):
            return "error"
        return "partial"


class SyncPolicy:
    """Keep each user's canonical health record fresh.

    Usage::

        policy = SyncPolicy(
            providers={"googleFit": GoogleFitProvider(token)},
            connections=registry,
            store=profile_store,
        )
        record = await policy.ensure_fresh("user-123")
    """

    def __init__(
        self,
        providers: Mapping[str, DeviceDataProvider],
        connections: ConnectionRegistry,
        store: ProfileStore,
        staleness_window: timedelta = timedelta(hours=1),
        lookback: timedelta = timedelta(days=7),
        provider_timeout: float = 20.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the policy.

        Args:
            providers:        provider_type → Device Data Provider instance.
            connections:      Connection registry for the users.
            store:            Profile store holding canonical records.
            staleness_window: Minimum age of ``last_synced`` before re-syncing.
            lookback:         Trailing window queried on each sync.
            provider_timeout: Seconds allowed for each category query.
            clock:            Returns the current UTC time.
        """
        self._providers = dict(providers)
        self._connections = connections
        self._store = store
        self._staleness_window = staleness_window
        self._lookback = lookback
        self._provider_timeout = provider_timeout
        self._clock = clock
        self._in_flight: dict[str, asyncio.Task] = {}
        self._outcomes: dict[str, SyncOutcome] = {}

    @classmethod
    def from_settings(
        cls,
        providers: Mapping[str, DeviceDataProvider],
        connections: ConnectionRegistry,
        store: ProfileStore,
        settings: Settings | None = None,
    ) -> "SyncPolicy":
        s = settings or get_settings()
        return cls(
            providers=providers,
            connections=connections,
            store=store,
            staleness_window=timedelta(seconds=s.staleness_window_seconds),
            lookback=timedelta(days=s.sync_lookback_days),
            provider_timeout=s.provider_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_stale(self, connection: ConnectionRecord, now: datetime | None = None) -> bool:
        """Return True if the connection is due for a sync."""
        if connection.last_synced is None:
            return True
        current = now or self._clock()
        return current - ensure_utc(connection.last_synced) > self._staleness_window

    def last_outcome(self, user_id: str) -> SyncOutcome | None:
        return self._outcomes.get(user_id)

    async def ensure_fresh(
        self, user_id: str, force: bool = False
    ) -> CanonicalHealthRecord | None:
        """Return the user's canonical record, syncing first when needed.

        Args:
            user_id: User to load.
            force:   Bypass the staleness window and sync now.

        Returns:
            The canonical record, or None when the user has no data at all.

        Raises:
            PersistenceError: If the profile store or connection registry fails.
        """
        active = await self._active_connection(user_id)
        if active is None:
            return await self._store.get_record(user_id)

        connection, provider = active
        if force or self.is_stale(connection):
            return await self._sync_once(user_id, connection, provider)

        record = await self._store.get_record(user_id)
        if record is None:
            logger.info(
                "No stored record for %s despite a fresh %s connection; syncing once",
                user_id, connection.provider_type,
            )
            return await self._sync_once(user_id, connection, provider)
        return record

    async def append_metrics(
        self, user_id: str, category: MetricType, metrics: list[HealthMetric]
    ) -> CanonicalHealthRecord:
        """Append manually entered metrics to the stored record, creating it if missing."""
        record = await self._store.get_record(user_id) or CanonicalHealthRecord(user_id=user_id)
        attr = _METRIC_ATTRS[category]
        setattr(record, attr, [*getattr(record, attr), *metrics])
        record.last_updated = self._clock()
        await self._store.put_record(user_id, record)
        logger.info("Appended %d manual %s metrics for %s", len(metrics), category.value, user_id)
        return record

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _active_connection(
        self, user_id: str
    ) -> tuple[ConnectionRecord, DeviceDataProvider] | None:
        for connection in await self._connections.get_connections(user_id):
            if not connection.is_connected:
                continue
            provider = self._providers.get(connection.provider_type)
            if provider is None:
                logger.warning(
                    "User %s is connected to %s but no provider is registered for it",
                    user_id, connection.provider_type,
                )
                continue
            return connection, provider
        return None

    async def _sync_once(
        self,
        user_id: str,
        connection: ConnectionRecord,
        provider: DeviceDataProvider,
    ) -> CanonicalHealthRecord:
        """Run one sync for the user, sharing it with concurrent callers."""
        task = self._in_flight.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._sync(user_id, connection, provider))
            self._in_flight[user_id] = task

            def _forget(done: asyncio.Task) -> None:
                if self._in_flight.get(user_id) is done:
                    del self._in_flight[user_id]

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight sync for %s", user_id)
        return await asyncio.shield(task)

    async def _sync(
        self,
        user_id: str,
        connection: ConnectionRecord,
        provider: DeviceDataProvider,
    ) -> CanonicalHealthRecord:
        now = self._clock()
        start = now - self._lookback
        outcome = SyncOutcome(
            user_id=user_id, provider_type=connection.provider_type, synced_at=now
        )

        fetchers: dict[str, Callable[[], Awaitable[list[Any]]]] = {
            "steps": lambda: provider.query_metric(MetricType.STEPS, start, now),
            "heart_rate": lambda: provider.query_metric(MetricType.HEART_RATE, start, now),
            "sleep": lambda: provider.query_sleep(start, now),
            "workouts": lambda: provider.query_workouts(start, now),
            "calories_burned": lambda: provider.query_metric(
                MetricType.ACTIVE_CALORIES, start, now
            ),
        }
        results = await asyncio.gather(
            *(self._fetch_category(user_id, name, fetch, outcome) for name, fetch in fetchers.items())
        )
        by_category = dict(zip(fetchers, results))

        record = CanonicalHealthRecord(user_id=user_id, last_updated=now, **by_category)
        await self._store.put_record(user_id, record)
        await self._connections.touch_sync(user_id, connection.provider_type, now)
        self._outcomes[user_id] = outcome

        logger.info(
            "Sync complete: %s/%s → %s, status=%s",
            user_id, connection.provider_type, outcome.sample_counts, outcome.status,
        )
        return record

    async def _fetch_category(
        self,
        user_id: str,
        category: str,
        fetch: Callable[[], Awaitable[list[Any]]],
        outcome: SyncOutcome,
    ) -> list[Any]:
        try:
            samples = await asyncio.wait_for(fetch(), timeout=self._provider_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Sync %s for %s timed out after %.0fs; treating as empty",
                category, user_id, self._provider_timeout,
            )
            outcome.failed_categories.append(category)
            return []
        except Exception as exc:
            logger.warning(
                "Sync %s for %s failed: %s; treating as empty", category, user_id, exc
            )
            outcome.failed_categories.append(category)
            return []

        samples = list(samples or [])
        outcome.sample_counts[category] = len(samples)
        return samples


_METRIC_ATTRS: dict[MetricType, str] = {
    MetricType.STEPS: "steps",
    MetricType.HEART_RATE: "heart_rate",
    MetricType.ACTIVE_CALORIES: "calories_burned",
}
