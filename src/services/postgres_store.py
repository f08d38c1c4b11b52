"""Postgres-backed Profile Store and Connection Registry.

Schema (created by ``ensure_schema`` at startup):

    health_records        one JSONB document per user, replaced wholesale
    wearable_connections  one row per (user_id, provider_type)

Driver failures are re-raised as PersistenceError so the facade can
surface them as an error state.
"""

from __future__ import annotations

import json
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Callable

import asyncpg

from src.recovery.base import (
    CanonicalHealthRecord,
    ConnectionRecord,
    ConnectionRegistry,
    ProfileStore,
)
from src.recovery.exceptions import PersistenceError
from src.services.database import get_connection

logger = logging.getLogger("restwell.db.stores")

ConnectionFactory = Callable[[], AbstractAsyncContextManager[Any]]

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS health_records (
    user_id       TEXT PRIMARY KEY,
    record        JSONB NOT NULL,
    last_updated  TIMESTAMPTZ NOT NULL,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS wearable_connections (
    user_id        TEXT NOT NULL,
    provider_type  TEXT NOT NULL,
    is_connected   BOOLEAN NOT NULL DEFAULT TRUE,
    last_synced    TIMESTAMPTZ,
    permissions    TEXT[] NOT NULL DEFAULT '{}',
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, provider_type)
);
"""


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT DO UPDATE (upsert) query.

    On conflict the non-key columns are overwritten and ``updated_at`` is
    bumped.

    Args:
        table:            Target table name.
        columns:          All columns to insert.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns to update on conflict (defaults to non-key columns).

    Returns:
        Parameterized SQL string.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    if update_columns:
        update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
        update_set += ", updated_at = NOW()"
        do_clause = f"DO UPDATE SET {update_set}"
    else:
        do_clause = "DO NOTHING"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )


_UPSERT_RECORD = build_upsert_query(
    "health_records", ["user_id", "record", "last_updated"], ["user_id"]
)
_UPSERT_CONNECTION = build_upsert_query(
    "wearable_connections",
    ["user_id", "provider_type", "is_connected", "last_synced", "permissions"],
    ["user_id", "provider_type"],
)


async def ensure_schema(connection_factory: ConnectionFactory = get_connection) -> None:
    try:
        async with connection_factory() as conn:
            await conn.execute(SCHEMA_SQL)
    except _DB_ERRORS as exc:
        raise PersistenceError(f"Could not create schema: {exc}") from exc
    logger.info("Database schema ready")


class PostgresProfileStore(ProfileStore):
    def __init__(self, connection_factory: ConnectionFactory = get_connection) -> None:
        self._connect = connection_factory

    async def get_record(self, user_id: str) -> CanonicalHealthRecord | None:
        try:
            async with self._connect() as conn:
                raw = await conn.fetchval(
                    "SELECT record FROM health_records WHERE user_id = $1", user_id
                )
        except _DB_ERRORS as exc:
            raise PersistenceError(f"Failed to read health record for {user_id}: {exc}") from exc

        if raw is None:
            return None
        data = json.loads(raw) if isinstance(raw, str) else raw
        return CanonicalHealthRecord.from_dict(data)

    async def put_record(self, user_id: str, record: CanonicalHealthRecord) -> None:
        try:
            async with self._connect() as conn:
                await conn.execute(
                    _UPSERT_RECORD, user_id, json.dumps(record.to_dict()), record.last_updated
                )
        except _DB_ERRORS as exc:
            raise PersistenceError(f"Failed to write health record for {user_id}: {exc}") from exc
        logger.debug("Stored health record for %s", user_id)


class PostgresConnectionRegistry(ConnectionRegistry):
    def __init__(self, connection_factory: ConnectionFactory = get_connection) -> None:
        self._connect = connection_factory

    async def get_connections(self, user_id: str) -> list[ConnectionRecord]:
        try:
            async with self._connect() as conn:
                rows = await conn.fetch(
                    "SELECT user_id, provider_type, is_connected, last_synced, permissions "
                    "FROM wearable_connections WHERE user_id = $1 ORDER BY created_at",
                    user_id,
                )
        except _DB_ERRORS as exc:
            raise PersistenceError(f"Failed to read connections for {user_id}: {exc}") from exc

        return [
            ConnectionRecord(
                user_id=row["user_id"],
                provider_type=row["provider_type"],
                is_connected=row["is_connected"],
                last_synced=row["last_synced"],
                permissions=list(row["permissions"] or []),
            )
            for row in rows
        ]

    async def touch_sync(self, user_id: str, provider_type: str, timestamp: datetime) -> None:
        try:
            async with self._connect() as conn:
                await conn.execute(
                    "UPDATE wearable_connections SET last_synced = $3, updated_at = NOW() "
                    "WHERE user_id = $1 AND provider_type = $2",
                    user_id, provider_type, timestamp,
                )
        except _DB_ERRORS as exc:
            raise PersistenceError(
                f"Failed to record sync time for {user_id}/{provider_type}: {exc}"
            ) from exc

    async def upsert_connection(self, record: ConnectionRecord) -> None:
        try:
            async with self._connect() as conn:
                await conn.execute(
                    _UPSERT_CONNECTION,
                    record.user_id,
                    record.provider_type,
                    record.is_connected,
                    record.last_synced,
                    list(record.permissions),
                )
        except _DB_ERRORS as exc:
            raise PersistenceError(
                f"Failed to save connection {record.user_id}/{record.provider_type}: {exc}"
            ) from exc
