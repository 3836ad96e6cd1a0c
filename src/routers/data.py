"""Merged training data and cache control endpoints."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from src.dependencies import AppSettings, CurrentSession, Orchestrator
from src.fitness.base import CredentialInvalid, parse_date_key, short_id, to_date_key
from src.models.fitness import CacheRefreshResponse, DailyRowRead

router = APIRouter(tags=["data"])
logger = logging.getLogger("stridesleep.data")


def _date_param(value: str, name: str) -> str:
    try:
        return to_date_key(parse_date_key(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be a YYYY-MM-DD date")


@router.get("/data", response_model=list[DailyRowRead])
async def get_data(
    session: CurrentSession,
    orchestrator: Orchestrator,
    settings: AppSettings,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
) -> Any:
    """One row per day in [startDate, endDate], served from cache when fresh."""
    start = _date_param(start_date or settings.default_start_date, "startDate")
    end = _date_param(end_date or settings.default_end_date, "endDate")
    if start > end:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")

    logger.info("GET /data %s..%s for session %s", start, end, short_id(session.session_id))
    try:
        rows = await orchestrator.read(session, start, end)
    except CredentialInvalid as exc:
        logger.warning("Session %s needs re-authorization: %s", short_id(session.session_id), exc)
        raise HTTPException(status_code=401, detail="Re-authorization required")
    except Exception:
        logger.exception("GET /data failed for session %s", short_id(session.session_id))
        raise HTTPException(status_code=500, detail="Failed to fetch data")

    return [DailyRowRead.model_validate(asdict(row)) for row in rows]


@router.post("/cache/refresh", response_model=CacheRefreshResponse)
async def refresh_cache(session: CurrentSession, orchestrator: Orchestrator) -> Any:
    """Drop the session cache and repopulate it in the background."""
    await orchestrator.refresh(session)
    return CacheRefreshResponse(
        success=True,
        message="Cache refresh initiated. Data will be updated shortly.",
    )
