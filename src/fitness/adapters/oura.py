"""Oura Ring API v2 adapter (sleep and readiness source).

API base: https://api.ouraring.com

Endpoints used:
    /v2/usercollection/daily_sleep     : Nightly sleep score (primary score)
    /v2/usercollection/sleep           : Sleep periods with stage durations
    /v2/usercollection/daily_readiness : Oura readiness score

Each endpoint is queried independently.  A failure on one yields an empty
result for that series only.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

import httpx
from pydantic import ValidationError

from src.config import Settings, get_settings
from src.fitness.base import (
    MalformedUpstreamPayload,
    ScoreRecord,
    SleepSession,
    UpstreamResult,
    UpstreamUnavailable,
    shift_date_key,
)
from src.fitness.config_loader import MergeConfig, get_merge_config
from src.models.upstream import OuraCollection, OuraDailyScore, OuraSleepPeriod

logger = logging.getLogger("stridesleep.fitness.oura")

R = TypeVar("R")

_DAILY_SLEEP = "/v2/usercollection/daily_sleep"
_SLEEP = "/v2/usercollection/sleep"
_DAILY_READINESS = "/v2/usercollection/daily_readiness"


class OuraAdapter:
    """Fetches Oura sleep and readiness series for a date window."""

    SOURCE_ID = "oura"

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        config: MergeConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the Oura adapter.

        Args:
            http_client: Shared httpx client; a short-lived one is used if None.
            config:      Merge config (singleton if None).
            settings:    App settings (singleton if None).
        """
        s = settings or get_settings()
        self._api_base = s.oura_api_base.rstrip("/")
        self._timeout = s.upstream_timeout_seconds
        self._http_client = http_client
        self._config = config or get_merge_config()

    def query_window(self, start: str, end: str) -> tuple[str, str]:
        """Return the window actually sent to Oura.

        Overnight sleep is sometimes labeled with the following day, so the
        end date is pushed out.  Callers filter back to the nominal range.
        """
        return start, shift_date_key(end, self._config.oura.sleep_window_extension_days)

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    async def fetch_sleep_scores(self, access_token: str, start: str, end: str) -> UpstreamResult[ScoreRecord]:
        """Daily sleep scores, one per date."""
        return await self._collect(access_token, _DAILY_SLEEP, start, end, "daily_sleep", _to_score)

    async def fetch_sleep_sessions(self, access_token: str, start: str, end: str) -> UpstreamResult[SleepSession]:
        """Raw sleep periods.  Several periods can share a date (naps)."""
        return await self._collect(access_token, _SLEEP, start, end, "sleep", _to_session)

    async def fetch_readiness(self, access_token: str, start: str, end: str) -> UpstreamResult[ScoreRecord]:
        return await self._collect(access_token, _DAILY_READINESS, start, end, "daily_readiness", _to_score)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _collect(
        self,
        access_token: str,
        path: str,
        start: str,
        end: str,
        series: str,
        convert: Callable[[dict], R],
    ) -> UpstreamResult[R]:
        """Follow ``next_token`` pagination for one series.

        Any failure discards the whole series; a half-read series would
        otherwise look like missing nights.
        """
        source = f"{self.SOURCE_ID}.{series}"
        query_start, query_end = self.query_window(start, end)
        params: dict[str, str] = {"start_date": query_start, "end_date": query_end}
        items: list[R] = []

        for _ in range(self._config.oura.max_pages):
            try:
                response = await self._get(path, params, access_token)
                response.raise_for_status()
                collection = OuraCollection.model_validate(response.json())
            except httpx.HTTPError as exc:
                return UpstreamResult.failed(source, UpstreamUnavailable(f"{path}: {exc}"))
            except (ValueError, ValidationError) as exc:
                return UpstreamResult.failed(source, MalformedUpstreamPayload(f"{path}: {exc}"))

            for raw in collection.data:
                try:
                    items.append(convert(raw))
                except ValidationError as exc:
                    logger.warning("Oura %s: skipping malformed document: %s", series, exc)

            if not collection.next_token:
                break
            params = {**params, "next_token": collection.next_token}
        else:
            logger.info("Oura %s: reached page limit (%d pages)", series, self._config.oura.max_pages)

        logger.info("Oura %s: fetched %d documents for %s..%s", series, len(items), query_start, query_end)
        return UpstreamResult(source=source, items=items)

    async def _get(self, path: str, params: dict, access_token: str) -> httpx.Response:
        url = f"{self._api_base}{path}"
        headers = {"Authorization": f"Bearer {access_token}"}
        if self._http_client:
            return await self._http_client.get(url, params=params, headers=headers, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(url, params=params, headers=headers)


def _to_score(raw: dict) -> ScoreRecord:
    doc = OuraDailyScore.model_validate(raw)
    return ScoreRecord(date=doc.day.isoformat(), score=doc.score)


def _to_session(raw: dict) -> SleepSession:
    doc = OuraSleepPeriod.model_validate(raw)
    return SleepSession(
        date=doc.day.isoformat(),
        total=doc.total_sleep_duration or 0,
        rem=doc.rem_sleep_duration or 0,
        deep=doc.deep_sleep_duration or 0,
        light=doc.light_sleep_duration or 0,
        score=doc.score,
    )
