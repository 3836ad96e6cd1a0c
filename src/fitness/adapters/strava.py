"""Strava API v3 adapter (activity source).

Environment variables:
    STRAVA_CLIENT_ID    : OAuth2 client ID
    STRAVA_CLIENT_SECRET: OAuth2 client secret

API base: https://www.strava.com/api/v3

Endpoints used:
    /oauth/token         : Refresh-token exchange (rotates the refresh token)
    /athlete/activities  : Paginated activity listing
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx
from pydantic import ValidationError

from src.config import Settings, get_settings
from src.fitness.base import (
    ActivityRecord,
    CredentialInvalid,
    MalformedUpstreamPayload,
    OAuthTokens,
    SessionCredentials,
    UpstreamResult,
    UpstreamUnavailable,
    local_date_key,
)
from src.fitness.config_loader import MergeConfig, get_merge_config
from src.models.upstream import StravaActivity, StravaTokenResponse

logger = logging.getLogger("stridesleep.fitness.strava")


class StravaAdapter:
    """Fetches runs from Strava and normalizes them into ActivityRecords.

    The adapter holds no token state.  Callers own a SessionCredentials per
    session and the adapter writes rotated tokens back to it.
    """

    SOURCE_ID = "strava"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        config: MergeConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the Strava adapter.

        Args:
            client_id:     OAuth2 client ID (STRAVA_CLIENT_ID env var).
            client_secret: OAuth2 client secret (STRAVA_CLIENT_SECRET env var).
            http_client:   Shared httpx client; a short-lived one is used if None.
            config:        Merge config (singleton if None).
            settings:      App settings (singleton if None).
        """
        s = settings or get_settings()
        self._client_id = client_id or s.strava_client_id
        self._client_secret = client_secret or s.strava_client_secret
        self._api_base = s.strava_api_base.rstrip("/")
        self._oauth_url = s.strava_oauth_url
        self._timeout = s.upstream_timeout_seconds
        self._http_client = http_client
        self._config = config or get_merge_config()

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def refresh_token(self, tokens: OAuthTokens) -> OAuthTokens:
        """Exchange a refresh token for a new token set.

        Strava rotates the refresh token; the returned OAuthTokens carries the
        new one and must replace the old set.

        Raises:
            CredentialInvalid: On any failure.  The stale token is not retried.
        """
        if not tokens.refresh_token:
            raise CredentialInvalid("Strava refresh token missing; re-authorization required")

        try:
            response = await self._request(
                "POST",
                self._oauth_url,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": tokens.refresh_token,
                },
            )
            response.raise_for_status()
            payload = StravaTokenResponse.model_validate(response.json())
        except httpx.HTTPError as exc:
            raise CredentialInvalid(f"Strava token refresh failed: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise CredentialInvalid(f"Strava token refresh returned an invalid body: {exc}") from exc

        if payload.expires_at is not None:
            expires_at = datetime.fromtimestamp(payload.expires_at, tz=timezone.utc)
        elif payload.expires_in is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=payload.expires_in)
        else:
            expires_at = None

        logger.info("Strava: access token refreshed (expires %s)", expires_at)
        return OAuthTokens(
            access_token=payload.access_token,
            refresh_token=payload.refresh_token or tokens.refresh_token,
            expires_at=expires_at,
            token_type=payload.token_type,
        )

    async def ensure_access_token(self, credentials: SessionCredentials) -> str:
        """Return a usable access token, refreshing under the session's lock.

        Concurrent readers of the same session wait for a single refresh.

        Raises:
            CredentialInvalid: If Strava is not connected or the refresh fails.
        """
        if credentials.strava is None:
            raise CredentialInvalid("Strava is not connected for this session")

        async with credentials.strava_lock:
            tokens = credentials.strava
            if tokens.needs_refresh():
                credentials.strava = await self.refresh_token(tokens)
            return credentials.strava.access_token

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    async def fetch_activity_pages(self, access_token: str) -> UpstreamResult[dict]:
        """Collect raw activities page by page.

        Stops on an empty page, a short page, or the page ceiling.  A failed
        or malformed page ends pagination and keeps what was already
        collected.
        """
        cfg = self._config.strava
        url = f"{self._api_base}/athlete/activities"
        activities: list[dict] = []

        for page in range(1, cfg.max_pages + 1):
            try:
                response = await self._request(
                    "GET",
                    url,
                    params={"page": page, "per_page": cfg.page_size},
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                batch = response.json()
            except httpx.HTTPError as exc:
                return UpstreamResult.failed(
                    self.SOURCE_ID, UpstreamUnavailable(f"activities page {page}: {exc}"), activities
                )
            except ValueError as exc:
                return UpstreamResult.failed(
                    self.SOURCE_ID, MalformedUpstreamPayload(f"activities page {page}: {exc}"), activities
                )

            if not isinstance(batch, list):
                return UpstreamResult.failed(
                    self.SOURCE_ID,
                    MalformedUpstreamPayload(
                        f"activities page {page}: expected a list, got {type(batch).__name__}"
                    ),
                    activities,
                )
            if not batch:
                break

            activities.extend(item for item in batch if isinstance(item, dict))
            if len(batch) < cfg.page_size:
                break
        else:
            logger.info("Strava: reached page limit (%d pages), stopping fetch", cfg.max_pages)

        logger.info("Strava: fetched %d activities", len(activities))
        return UpstreamResult(source=self.SOURCE_ID, items=activities)

    async def fetch_runs(self, access_token: str) -> UpstreamResult[ActivityRecord]:
        """Fetch all pages and keep only normalized runs, in fetch order."""
        pages = await self.fetch_activity_pages(access_token)
        runs = self.normalize_activities(pages.items)
        logger.info("Strava: %d runs after filtering", len(runs))
        return UpstreamResult(source=self.SOURCE_ID, items=runs, error=pages.error)

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize_activities(self, raw_activities: list[dict]) -> list[ActivityRecord]:
        allowed = set(self._config.strava.activity_types)
        runs: list[ActivityRecord] = []
        for raw in raw_activities:
            try:
                activity = StravaActivity.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Strava: skipping malformed activity %s: %s", raw.get("id"), exc)
                continue
            if activity.type not in allowed:
                continue
            record = self.normalize_activity(activity)
            if record is not None:
                runs.append(record)
        return runs

    def normalize_activity(self, activity: StravaActivity) -> ActivityRecord | None:
        """Convert one Strava activity into an ActivityRecord.

        This is a pure function.  Returns None when no start timestamp can
        be dated.
        """
        stamp = activity.start_date_local or activity.start_date
        if not stamp:
            logger.warning("Strava: activity %s has no start date, skipping", activity.id)
            return None
        try:
            date_key = local_date_key(stamp)
        except ValueError:
            logger.warning("Strava: activity %s has unparseable start date %r", activity.id, stamp)
            return None

        distance = activity.distance or 0.0
        pace = None
        if activity.moving_time and distance > 0:
            distance_units = distance / self._config.units.meters_per_distance_unit
            pace = round((activity.moving_time / 60) / distance_units, 2)

        cadence = None
        if activity.average_cadence and activity.average_cadence > 0:
            cadence = activity.average_cadence * self._config.strava.cadence_multiplier

        return ActivityRecord(
            date=date_key,
            distance_m=distance,
            moving_time_s=activity.moving_time or None,
            pace=pace,
            average_heartrate=_positive(activity.average_heartrate),
            max_heartrate=_positive(activity.max_heartrate),
            cadence=cadence,
            name=activity.name or "Run",
            start_date_local=activity.start_date_local,
        )

    # ------------------------------------------------------------------
    # Private HTTP helper
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http_client:
            return await self._http_client.request(method, url, timeout=self._timeout, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)


def _positive(value: float | None) -> float | None:
    return value if value is not None and value > 0 else None
