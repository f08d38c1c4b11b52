"""Recovery endpoints: health state, forced refresh, manual metrics, connections."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from src.dependencies import HealthFacade
from src.models.recovery import (
    ConnectionCreate,
    ConnectionRead,
    HealthStatusRead,
    ManualMetricsCreate,
)
from src.recovery.adapters import get_provider_class, provider_types
from src.recovery.base import HealthMetric, ensure_utc, utc_now
from src.recovery.exceptions import PersistenceError
from src.recovery.facade import HealthDataState

router = APIRouter(prefix="/recovery", tags=["recovery"])
logger = logging.getLogger("restwell.api.recovery")

MANUAL_SOURCE = "Manual"


def _render(state: HealthDataState) -> HealthStatusRead:
    if state.error is not None:
        raise HTTPException(status_code=503, detail=state.error_message)
    return HealthStatusRead.from_state(state)


@router.get("/providers", response_model=list[str])
async def list_providers() -> Any:
    return provider_types()


# ---------- Health state ----------

@router.get("/{user_id}/status", response_model=HealthStatusRead)
async def get_status(user_id: str, facade: HealthFacade) -> Any:
    return _render(await facade.get_status(user_id))


@router.post("/{user_id}/refresh", response_model=HealthStatusRead)
async def refresh_status(user_id: str, facade: HealthFacade) -> Any:
    return _render(await facade.refresh(user_id))


@router.post("/{user_id}/metrics", response_model=HealthStatusRead, status_code=201)
async def add_metrics(user_id: str, body: ManualMetricsCreate, facade: HealthFacade) -> Any:
    now = utc_now()
    metrics = [
        HealthMetric(
            value=m.value,
            timestamp=ensure_utc(m.timestamp) if m.timestamp else now,
            source=MANUAL_SOURCE,
        )
        for m in body.metrics
    ]
    try:
        state = await facade.add_metrics(user_id, body.category, metrics)
    except PersistenceError as exc:
        logger.exception("Manual metric entry failed for %s", user_id)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return HealthStatusRead.from_state(state)


# ---------- Connections ----------

@router.put("/{user_id}/connections/{provider_type}", response_model=ConnectionRead)
async def connect_provider(
    user_id: str, provider_type: str, body: ConnectionCreate, facade: HealthFacade
) -> Any:
    try:
        get_provider_class(provider_type)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown provider '{provider_type}'") from exc

    try:
        return await facade.connect(user_id, provider_type, body.permissions)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.delete("/{user_id}/connections/{provider_type}", status_code=204)
async def disconnect_provider(user_id: str, provider_type: str, facade: HealthFacade) -> Response:
    try:
        await facade.disconnect(user_id, provider_type)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return Response(status_code=204)
