"""Shared httpx client for Strava and Oura calls."""

from __future__ import annotations

import logging

import httpx

from src.config import Settings, get_settings

logger = logging.getLogger("stridesleep.http")

_client: httpx.AsyncClient | None = None


async def init_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Create the upstream HTTP client. Call once at app startup."""
    global _client
    s = settings or get_settings()
    _client = httpx.AsyncClient(
        timeout=httpx.Timeout(s.upstream_timeout_seconds),
        headers={"User-Agent": f"stride-sleep/{s.app_version}"},
    )
    logger.info("Upstream HTTP client initialized (timeout=%ss)", s.upstream_timeout_seconds)
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Upstream HTTP client closed")
