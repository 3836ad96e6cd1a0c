"""Health check endpoint. Public, no session required."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from src.dependencies import AppSettings, Orchestrator

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(settings: AppSettings, orchestrator: Orchestrator) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also reports whether the session cache backend answers.
    """
    cache = orchestrator.cache
    if not cache.configured:
        cache_status = "disabled"
    elif await cache.ping():
        cache_status = "connected"
    else:
        cache_status = "unreachable"

    return {
        "status": "healthy" if cache_status != "unreachable" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "cache": cache_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
