"""Schemas for Strava and Oura responses, validated at the client boundary.

Only the fields the merge engine reads are declared.  A document that fails
validation is skipped by the client; a collection that fails validation is a
MalformedUpstreamPayload for the whole call.
"""

from __future__ import annotations

from datetime import date

from pydantic import Field

from src.models.base import UpstreamModel


# ---------- Strava ----------

class StravaActivity(UpstreamModel):
    id: int | None = None
    type: str | None = None
    name: str | None = None
    distance: float | None = Field(default=None, ge=0)
    moving_time: int | None = Field(default=None, ge=0)
    start_date: str | None = None
    start_date_local: str | None = None
    average_heartrate: float | None = None
    max_heartrate: float | None = None
    average_cadence: float | None = None


class StravaTokenResponse(UpstreamModel):
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None  # epoch seconds
    expires_in: int | None = None
    token_type: str = "Bearer"


# ---------- Oura ----------

class OuraCollection(UpstreamModel):
    """Envelope shared by every /v2/usercollection endpoint."""

    data: list[dict]
    next_token: str | None = None


class OuraDailyScore(UpstreamModel):
    """A daily_sleep or daily_readiness document."""

    day: date
    score: int | None = Field(default=None, ge=0, le=100)


class OuraSleepPeriod(UpstreamModel):
    """A /sleep document.  Durations are seconds."""

    day: date
    total_sleep_duration: int | None = Field(default=None, ge=0)
    rem_sleep_duration: int | None = Field(default=None, ge=0)
    deep_sleep_duration: int | None = Field(default=None, ge=0)
    light_sleep_duration: int | None = Field(default=None, ge=0)
    score: int | None = Field(default=None, ge=0, le=100)
