"""Health Data Facade: the single entry point for presentation consumers.

One call fetches the canonical record once (through the sync policy) and
derives the recovery status and the sleep summary from that same record,
so the three values in a HealthDataState always belong together.

Observers registered with ``subscribe()`` see every state transition:
a ``loading=True`` state when a call starts, then the finished state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable

from src.recovery.base import (
    CanonicalHealthRecord,
    ConnectionRecord,
    ConnectionRegistry,
    HealthMetric,
    MetricType,
    RecoveryStatus,
    SleepSummary,
    utc_now,
)
from src.recovery.exceptions import PersistenceError
from src.recovery.recovery_score import RecoveryScorer
from src.recovery.sleep_summary import SleepSummarizer
from src.recovery.sync.policy import SyncPolicy

logger = logging.getLogger("restwell.recovery.facade")

StateCallback = Callable[["HealthDataState"], None]


@dataclass(frozen=True)
class HealthDataState:
    """What the presentation layer renders for one user.

    Attributes:
        user_id:         User the state belongs to.
        record:          Canonical record the derived values were computed from.
        recovery_status: None when there is no sleep or heart-rate data.
        sleep_summary:   None when there are no sleep intervals.
        loading:         True while a fetch is in progress.
        error:           Set when persistence failed; the data fields keep
                         their last good values.
    """

    user_id: str
    record: CanonicalHealthRecord | None = None
    recovery_status: RecoveryStatus | None = None
    sleep_summary: SleepSummary | None = None
    loading: bool = False
    error: PersistenceError | None = None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


class HealthDataFacade:
    """Fetch, derive and publish per-user health state.

    Usage::

        facade = HealthDataFacade(sync_policy, connections)
        state = await facade.get_status("user-123")
        if state.recovery_status is not None:
            print(state.recovery_status.score)
    """

    def __init__(
        self,
        sync_policy: SyncPolicy,
        connections: ConnectionRegistry,
        scorer: RecoveryScorer | None = None,
        summarizer: SleepSummarizer | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sync = sync_policy
        self._connections = connections
        self._scorer = scorer or RecoveryScorer()
        self._summarizer = summarizer or SleepSummarizer()
        self._clock = clock
        self._states: dict[str, HealthDataState] = {}
        self._pending: dict[str, int] = {}
        self._subscribers: list[StateCallback] = []

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register ``callback`` for state transitions; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def current_state(self, user_id: str) -> HealthDataState:
        return self._states.get(user_id) or HealthDataState(user_id=user_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_status(self, user_id: str) -> HealthDataState:
        """Return the user's record, recovery status and sleep summary.

        Syncs first when the user's data is stale.  Persistence failures are
        reported through ``state.error`` rather than raised.
        """
        return await self._load(user_id, force=False)

    async def refresh(self, user_id: str) -> HealthDataState:
        """Like get_status(), but always syncs with the provider first."""
        return await self._load(user_id, force=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def add_metrics(
        self, user_id: str, category: MetricType, metrics: list[HealthMetric]
    ) -> HealthDataState:
        """Append manually entered metrics and publish the re-derived state.

        Raises:
            PersistenceError: If the profile store cannot be read or written.
        """
        record = await self._sync.append_metrics(user_id, category, metrics)
        state = self._derive(user_id, record)
        self._publish(state)
        return state

    async def connect(
        self, user_id: str, provider_type: str, permissions: list[str] | None = None
    ) -> ConnectionRecord:
        """Create or re-enable a connection; the next status call syncs it."""
        record = ConnectionRecord(
            user_id=user_id,
            provider_type=provider_type,
            is_connected=True,
            permissions=list(permissions or []),
        )
        await self._connections.upsert_connection(record)
        logger.info("Connected %s for user %s", provider_type, user_id)
        return record

    async def disconnect(self, user_id: str, provider_type: str) -> None:
        await self._connections.disconnect(user_id, provider_type)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, user_id: str, force: bool) -> HealthDataState:
        state = replace(self.current_state(user_id), loading=True, error=None)
        self._publish(state)
        self._pending[user_id] = self._pending.get(user_id, 0) + 1
        try:
            record = await self._sync.ensure_fresh(user_id, force=force)
        except PersistenceError as exc:
            logger.exception("Health data unavailable for %s", user_id)
            state = replace(state, error=exc)
        else:
            state = self._derive(user_id, record)
        finally:
            self._pending[user_id] -= 1
            if not self._pending[user_id]:
                del self._pending[user_id]
            state = replace(state, loading=user_id in self._pending)
            self._publish(state)
        return state

    def _derive(self, user_id: str, record: CanonicalHealthRecord | None) -> HealthDataState:
        if record is None:
            return HealthDataState(user_id=user_id)
        now = self._clock()
        return HealthDataState(
            user_id=user_id,
            record=record,
            recovery_status=self._scorer.score(record, now),
            sleep_summary=self._summarizer.summarize(record.sleep, now),
        )

    def _publish(self, state: HealthDataState) -> None:
        self._states[state.user_id] = state
        for callback in list(self._subscribers):
            callback(state)
