"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings, get_settings
from src.recovery.facade import HealthDataFacade


def get_health_facade(request: Request) -> HealthDataFacade:
    """Return the facade built in the app lifespan."""
    facade: HealthDataFacade | None = getattr(request.app.state, "health_facade", None)
    if facade is None:
        raise HTTPException(status_code=503, detail="Recovery engine not initialized")
    return facade


# Annotated shortcuts for route signatures
HealthFacade = Annotated[HealthDataFacade, Depends(get_health_facade)]
AppSettings = Annotated[Settings, Depends(get_settings)]
