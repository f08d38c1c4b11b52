"""In-memory Profile Store and Connection Registry.

Used when no database is configured and as test doubles.  Records are
copied on the way in and on the way out so callers can never mutate
persisted state by holding a reference.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime

from src.recovery.base import (
    CanonicalHealthRecord,
    ConnectionRecord,
    ConnectionRegistry,
    ProfileStore,
)

logger = logging.getLogger("restwell.recovery.stores")


class InMemoryProfileStore(ProfileStore):
    def __init__(self) -> None:
        self._records: dict[str, CanonicalHealthRecord] = {}

    async def get_record(self, user_id: str) -> CanonicalHealthRecord | None:
        record = self._records.get(user_id)
        return copy.deepcopy(record) if record is not None else None

    async def put_record(self, user_id: str, record: CanonicalHealthRecord) -> None:
        self._records[user_id] = copy.deepcopy(record)
        logger.debug("Stored health record for %s", user_id)


class InMemoryConnectionRegistry(ConnectionRegistry):
    """Connection records keyed by (user_id, provider_type), in insertion order."""

    def __init__(self, records: list[ConnectionRecord] | None = None) -> None:
        self._records: dict[tuple[str, str], ConnectionRecord] = {}
        for record in records or []:
            self._records[(record.user_id, record.provider_type)] = copy.deepcopy(record)

    async def get_connections(self, user_id: str) -> list[ConnectionRecord]:
        return [
            copy.deepcopy(record)
            for (uid, _), record in self._records.items()
            if uid == user_id
        ]

    async def touch_sync(self, user_id: str, provider_type: str, timestamp: datetime) -> None:
        record = self._records.get((user_id, provider_type))
        if record is None:
            logger.warning("touch_sync for unknown connection %s/%s", user_id, provider_type)
            return
        record.last_synced = timestamp

    async def upsert_connection(self, record: ConnectionRecord) -> None:
        self._records[(record.user_id, record.provider_type)] = copy.deepcopy(record)
