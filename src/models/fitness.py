"""Response schemas for the data, cache and auth routes."""

from __future__ import annotations

from pydantic import Field

from src.models.base import StrideBase


# ---------- Daily rows ----------

class DailyRowRead(StrideBase):
    """One calendar day of merged training and recovery data.

    Durations are preformatted as ``"{h}h {m}m"``; distance is in miles.
    """

    date: str
    distance: float = 0.0
    sleep: str | None = None
    light: str | None = None
    rem: str | None = None
    deep: str | None = None
    sleep_score: int | None = Field(default=None, alias="sleepScore")
    readiness_score: int | None = Field(default=None, alias="readinessScore")
    pace: float | None = None
    average_heartrate: int | None = Field(default=None, alias="averageHeartrate")
    max_heartrate: float | None = Field(default=None, alias="maxHeartrate")
    cadence: int | None = None


# ---------- Cache ----------

class CacheRefreshResponse(StrideBase):
    success: bool
    message: str


# ---------- Auth ----------

class AuthStatus(StrideBase):
    strava: bool
    oura: bool


class LogoutResponse(StrideBase):
    success: bool
    cleared_keys: int = Field(default=0, alias="clearedKeys")
