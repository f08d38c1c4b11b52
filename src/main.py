"""Restwell API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.recovery.adapters import GoogleFitProvider
from src.recovery.base import ConnectionRegistry, DeviceDataProvider, ProfileStore
from src.recovery.facade import HealthDataFacade
from src.recovery.stores import InMemoryConnectionRegistry, InMemoryProfileStore
from src.recovery.sync import SyncPolicy
from src.routers import health, recovery
from src.services.database import close_pool, init_pool
from src.services.postgres_store import (
    PostgresConnectionRegistry,
    PostgresProfileStore,
    ensure_schema,
)

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("restwell")


# ---------- Wiring ----------

def build_providers(settings: Settings) -> dict[str, DeviceDataProvider]:
    providers: dict[str, DeviceDataProvider] = {}
    if settings.google_fit_access_token:
        providers[GoogleFitProvider.PROVIDER_TYPE] = GoogleFitProvider(
            settings.google_fit_access_token
        )
    return providers


async def build_facade(settings: Settings) -> HealthDataFacade:
    store: ProfileStore
    connections: ConnectionRegistry
    if settings.database_url:
        await init_pool(settings)
        await ensure_schema()
        store, connections = PostgresProfileStore(), PostgresConnectionRegistry()
    else:
        logger.info("RESTWELL_DATABASE_URL not set, using in-memory stores")
        store, connections = InMemoryProfileStore(), InMemoryConnectionRegistry()

    providers = build_providers(settings)
    logger.info("Registered providers: %s", sorted(providers) or "none")
    policy = SyncPolicy.from_settings(providers, connections, store, settings)
    return HealthDataFacade(policy, connections)


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting Restwell API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    if getattr(app.state, "health_facade", None) is None:
        app.state.health_facade = await build_facade(settings)
    yield
    await close_pool()
    logger.info("Restwell API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Restwell API",
        description=(
            "Recovery scoring from wearable data: sleep summary, HRV estimate "
            "and a daily training recommendation."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(recovery.router, prefix="/api/v1")

    return app


app = create_app()
