"""Read, refresh and logout operations over the two sources and the cache.

A read checks the session cache first.  On a hit the cached arrays are
reconstructed for the requested range.  On a miss all four upstream series
are fetched concurrently over a wide historical window, merged once, and
the requested range is answered from that merge while the full merge is
written to the cache in the background.

Usage::

    orchestrator = FitnessOrchestrator(strava, oura, cache)
    rows = await orchestrator.read(credentials, "2025-12-01", "2025-12-31")
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable

from src.config import Settings, get_settings
from src.fitness.adapters.oura import OuraAdapter
from src.fitness.adapters.strava import StravaAdapter
from src.fitness.aggregation import DailyRow, build_rows
from src.fitness.base import CredentialInvalid, SessionCredentials, short_id, to_date_key
from src.fitness.cache import FitnessCache, flatten_merged, reconstruct_merged
from src.fitness.config_loader import MergeConfig, get_merge_config
from src.fitness.merge_engine import MergedMapping, MergeEngine, MergeInputs

logger = logging.getLogger("stridesleep.fitness.sync")


class FitnessOrchestrator:
    """Coordinates the source clients, merge engine, cache and row builder."""

    def __init__(
        self,
        strava: StravaAdapter,
        oura: OuraAdapter,
        cache: FitnessCache,
        engine: MergeEngine | None = None,
        settings: Settings | None = None,
        config: MergeConfig | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            strava:   Activity source client.
            oura:     Sleep/readiness source client.
            cache:    Session cache (may have no backend).
            engine:   Merge engine; built from settings.trace_dates if None.
            settings: App settings (singleton if None).
            config:   Merge config (singleton if None).
            today:    Clock for the historical window.
        """
        self._settings = settings or get_settings()
        self._strava = strava
        self._oura = oura
        self._cache = cache
        self._engine = engine or MergeEngine(trace_dates=self._settings.trace_dates)
        self._config = config or get_merge_config()
        self._today = today
        self._background: set[asyncio.Task] = set()

    @property
    def cache(self) -> FitnessCache:
        return self._cache

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def history_window(self) -> tuple[str, str]:
        """The default wide window: ``history_years`` back to today."""
        today = self._today()
        years = self._settings.history_years
        try:
            start = today.replace(year=today.year - years)
        except ValueError:
            start = today.replace(year=today.year - years, day=28)
        return to_date_key(start), to_date_key(today)

    def live_window(self, start: str, end: str) -> tuple[str, str]:
        """Widen the requested range to cover the historical window."""
        history_start, history_end = self.history_window()
        return min(start, history_start), max(end, history_end)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def read(self, credentials: SessionCredentials, start: str, end: str) -> list[DailyRow]:
        """Return one row per day in [start, end].

        Raises:
            CredentialInvalid: If a source is not connected or the Strava
                refresh fails.  Rows are never partially returned.
        """
        sid = credentials.session_id
        mapping: MergedMapping | None = None

        if await self._cache.is_fresh(sid):
            payload = await self._cache.get_all(sid)
            if payload is not None:
                mapping = reconstruct_merged(payload, start, end)
                logger.info("Session %s: served %s..%s from cache", short_id(sid), start, end)

        if mapping is None:
            window_start, window_end = self.live_window(start, end)
            full = await self.fetch_merged(credentials, window_start, window_end)
            mapping = full.filter_range(start, end)
            if self._cache.configured:
                self.schedule(self._write_cache(sid, full), f"cache populate for {short_id(sid)}")
            logger.info(
                "Session %s: served %s..%s live (fetched %s..%s)",
                short_id(sid), start, end, window_start, window_end,
            )

        return build_rows(mapping, start, end, self._config)

    async def fetch_merged(self, credentials: SessionCredentials, start: str, end: str) -> MergedMapping:
        """Fetch every series for [start, end] concurrently and merge them."""
        if credentials.oura is None:
            raise CredentialInvalid("Oura is not connected for this session")

        strava_token = await self._strava.ensure_access_token(credentials)
        oura_token = credentials.oura.access_token

        runs, sleep_scores, sleep_sessions, readiness = await asyncio.gather(
            self._strava.fetch_runs(strava_token),
            self._oura.fetch_sleep_scores(oura_token, start, end),
            self._oura.fetch_sleep_sessions(oura_token, start, end),
            self._oura.fetch_readiness(oura_token, start, end),
        )
        failed = [r.source for r in (runs, sleep_scores, sleep_sessions, readiness) if not r.ok]
        if failed:
            logger.warning(
                "Session %s: merging with degraded sources: %s",
                short_id(credentials.session_id), ", ".join(failed),
            )

        return self._engine.run(
            MergeInputs(
                runs=runs.items,
                sleep_scores=sleep_scores.items,
                sleep_sessions=sleep_sessions.items,
                readiness=readiness.items,
            )
        )

    async def populate(self, credentials: SessionCredentials) -> bool:
        """Fetch the historical window and write it to the session cache."""
        start, end = self.history_window()
        full = await self.fetch_merged(credentials, start, end)
        return await self._write_cache(credentials.session_id, full)

    async def refresh(self, credentials: SessionCredentials) -> asyncio.Task:
        """Clear the session cache and repopulate it in the background."""
        cleared = await self._cache.clear(credentials.session_id)
        logger.info("Session %s: cache refresh, %d keys cleared", short_id(credentials.session_id), cleared)
        return self.schedule(self.populate(credentials), f"cache refresh for {short_id(credentials.session_id)}")

    async def logout(self, session_id: str) -> int:
        return await self._cache.clear(session_id)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def schedule(self, coro: Awaitable, label: str) -> asyncio.Task:
        """Run a coroutine detached from the caller; failures are only logged."""
        task = asyncio.ensure_future(coro)
        self._background.add(task)

        def _done(t: asyncio.Task) -> None:
            self._background.discard(t)
            if t.cancelled():
                logger.info("Background %s cancelled", label)
                return
            exc = t.exception()
            if exc is not None:
                logger.error("Background %s failed: %s", label, exc, exc_info=exc)

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for every outstanding background task."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _write_cache(self, session_id: str, mapping: MergedMapping) -> bool:
        return await self._cache.write_all(session_id, flatten_merged(mapping))
