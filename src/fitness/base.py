"""Canonical data models for the Stride & Sleep merge engine.

Every source client returns these types, and they are the single source of
truth consumed by the merge engine, the cache layer, and the aggregation
adapter.  All dates are DateKeys: ``YYYY-MM-DD`` strings taken from each
source's own local-time representation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Generic, Iterator, TypeVar

logger = logging.getLogger("stridesleep.fitness")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class FitnessDataError(Exception):
    """Base class for merge-engine errors."""


class UpstreamUnavailable(FitnessDataError):
    """Network failure, timeout, or non-2xx response from Strava or Oura."""


class MalformedUpstreamPayload(FitnessDataError):
    """An upstream response did not have the expected shape."""


class CredentialInvalid(FitnessDataError):
    """A token refresh failed; the user must re-authorize."""


class CacheUnavailable(FitnessDataError):
    """The cache backend is disabled or unreachable."""


# ---------------------------------------------------------------------------
# DateKey helpers
# ---------------------------------------------------------------------------


def to_date_key(value: date) -> str:
    return value.isoformat()


def parse_date_key(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` DateKey.

    Raises:
        ValueError: If the string is not a valid calendar date.
    """
    return date.fromisoformat(value)


def iter_date_keys(start: str, end: str) -> Iterator[str]:
    """Yield every DateKey from start to end, inclusive, ascending."""
    current = parse_date_key(start)
    last = parse_date_key(end)
    while current <= last:
        yield current.isoformat()
        current += timedelta(days=1)


def shift_date_key(value: str, days: int) -> str:
    return (parse_date_key(value) + timedelta(days=days)).isoformat()


def local_date_key(timestamp: str) -> str:
    """Return the DateKey of a timestamp's own date components.

    Strava's ``start_date_local`` is wall-clock time with a misleading ``Z``
    suffix.  Converting it to another zone would move late-evening runs onto
    the wrong day, so only the literal calendar date is used.

    Raises:
        ValueError: If the timestamp cannot be parsed.
    """
    parsed = datetime.fromisoformat(timestamp.strip().replace("Z", "+00:00"))
    return parsed.date().isoformat()


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@dataclass
class OAuthTokens:
    """OAuth token set for one provider.

    Attributes:
        access_token:  Bearer token for API calls.
        refresh_token: Token used to obtain a new access_token.  Strava
                       rotates it on every refresh.
        expires_at:    UTC datetime when the access_token expires.
        token_type:    Token type, typically "Bearer".
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    token_type: str = "Bearer"

    def needs_refresh(self, buffer_seconds: int = 300) -> bool:
        """Return True if the access token is missing or expires within the buffer.

        A token set with a refresh token but no known expiry is refreshed,
        matching Strava's short-lived access tokens.
        """
        if not self.access_token:
            return True
        if self.expires_at is None:
            return self.refresh_token is not None
        now = datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (expires_at - now).total_seconds() < buffer_seconds


@dataclass
class SessionCredentials:
    """Per-session credentials handed over by the OAuth collaborator.

    One instance per session.  ``strava`` is replaced after every refresh;
    ``strava_lock`` serializes refreshes so a rotated refresh token is never
    spent twice.
    """

    session_id: str
    strava: OAuthTokens | None = None
    oura: OAuthTokens | None = None
    strava_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_complete(self) -> bool:
        return self.strava is not None and self.oura is not None


# ---------------------------------------------------------------------------
# Tagged upstream result
# ---------------------------------------------------------------------------


@dataclass
class UpstreamResult(Generic[T]):
    """Outcome of one upstream call: validated items, or an empty set plus the error.

    Clients never raise UpstreamUnavailable or MalformedUpstreamPayload past
    this boundary; the merge engine only ever sees ``items``.
    """

    source: str
    items: list[T] = field(default_factory=list)
    error: FitnessDataError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, source: str, error: FitnessDataError, partial: list[T] | None = None) -> "UpstreamResult[T]":
        logger.warning("%s: %s", source, error)
        return cls(source=source, items=list(partial or []), error=error)


# ---------------------------------------------------------------------------
# Canonical records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActivityRecord:
    """One normalized run.

    Attributes:
        date:              DateKey of the local start time.
        distance_m:        Distance in meters.
        moving_time_s:     Moving time in seconds.
        pace:              Minutes per distance unit, 2 dp; None without distance.
        average_heartrate: Average heart rate in bpm.
        max_heartrate:     Maximum heart rate in bpm.
        cadence:           Total steps per minute (both feet).
        name:              Activity title.
        start_date_local:  Raw local start timestamp from the source.
    """

    date: str
    distance_m: float
    moving_time_s: int | None = None
    pace: float | None = None
    average_heartrate: float | None = None
    max_heartrate: float | None = None
    cadence: float | None = None
    name: str = "Run"
    start_date_local: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "distance": self.distance_m,
            "startDate": self.start_date_local,
            "name": self.name,
            "pace": self.pace,
            "averageHeartrate": self.average_heartrate,
            "maxHeartrate": self.max_heartrate,
            "cadence": self.cadence,
            "movingTime": self.moving_time_s,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ActivityRecord":
        return cls(
            date=raw["date"],
            distance_m=float(raw.get("distance") or 0.0),
            moving_time_s=raw.get("movingTime"),
            pace=raw.get("pace"),
            average_heartrate=raw.get("averageHeartrate"),
            max_heartrate=raw.get("maxHeartrate"),
            cadence=raw.get("cadence"),
            name=raw.get("name") or "Run",
            start_date_local=raw.get("startDate"),
        )


@dataclass
class SleepSession:
    """One raw Oura sleep period; several may share a DateKey."""

    date: str
    total: int = 0
    rem: int = 0
    deep: int = 0
    light: int = 0
    score: int | None = None


@dataclass
class ScoreRecord:
    """A ``{date, score}`` pair from daily_sleep or daily_readiness."""

    date: str
    score: int | None = None


@dataclass
class SleepDay:
    """Merged sleep for one DateKey.  Durations are seconds."""

    date: str
    total: int | None = None
    rem: int | None = None
    deep: int | None = None
    light: int | None = None
    score: int | None = None

    @property
    def has_total(self) -> bool:
        return bool(self.total)


@dataclass
class ReadinessDay:
    date: str
    score: int | None = None


@dataclass
class MergedDayEntry:
    """The canonical unit of the merged mapping."""

    date: str
    sleep: SleepDay | None = None
    readiness: ReadinessDay | None = None
    runs: list[ActivityRecord] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------


def short_id(session_id: str) -> str:
    """Truncate a session id for log lines."""
    return f"{session_id[:8]}..." if len(session_id) > 8 else session_id
