"""Health check endpoint, public."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import asyncpg
from fastapi import APIRouter

from src.config import get_settings
from src.services.database import get_pool, pool_ready

router = APIRouter(tags=["system"])
logger = logging.getLogger("restwell.health")


@router.get("/health")
async def health_check() -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    When a database is configured, also performs a lightweight connectivity check.
    """
    settings = get_settings()
    database = "not_configured"
    status = "healthy"
    if pool_ready():
        try:
            async with get_pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
            database = "connected"
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.warning("Health check DB probe failed: %s", exc)
            database = "unreachable"
            status = "degraded"

    return {
        "status": status,
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
