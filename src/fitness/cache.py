"""Session-scoped Redis cache for merged fitness data.

Key layout (one set per session, every key written with the same TTL)::

    cache:{session_id}:activities   JSON list of ActivityRecord dicts
    cache:{session_id}:sleep        JSON list of {date, total, rem, deep, light, score}
    cache:{session_id}:readiness    JSON list of {date, score}
    cache:{session_id}:timestamp    epoch seconds of the last full write

Freshness is session-global: the timestamp key decides it for all three
categories.  A fresh session missing any category is a miss.

The cache never raises.  With no Redis configured every read is a miss and
every write is a no-op; after a Redis error the backend is skipped until a
retry interval has passed.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.fitness.base import (
    ActivityRecord,
    CacheUnavailable,
    ReadinessDay,
    SleepDay,
    iter_date_keys,
    short_id,
)
from src.fitness.merge_engine import MergedMapping

logger = logging.getLogger("stridesleep.fitness.cache")

CATEGORIES = ("activities", "sleep", "readiness")
SOURCE_CACHE = "cache"


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


@dataclass
class CachedPayload:
    """The three flattened category arrays for one session."""

    activities: list[dict[str, Any]] = field(default_factory=list)
    sleep: list[dict[str, Any]] = field(default_factory=list)
    readiness: list[dict[str, Any]] = field(default_factory=list)

    def by_category(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "activities": self.activities,
            "sleep": self.sleep,
            "readiness": self.readiness,
        }


def flatten_merged(mapping: MergedMapping) -> CachedPayload:
    """Flatten a merged mapping into per-category arrays for caching.

    Sleep is kept when it has any non-zero duration or a score, with
    missing durations stored as 0.  Readiness is kept only with a score.  Runs are stored
    whole and carry their own date.
    """
    payload = CachedPayload()
    for date_key, entry in mapping.items():
        payload.activities.extend(run.to_dict() for run in entry.runs)

        sleep = entry.sleep
        if sleep is not None and (_has_duration(sleep) or sleep.score is not None):
            payload.sleep.append(
                {
                    "date": date_key,
                    "total": sleep.total or 0,
                    "rem": sleep.rem or 0,
                    "deep": sleep.deep or 0,
                    "light": sleep.light or 0,
                    "score": sleep.score,
                }
            )

        if entry.readiness is not None and entry.readiness.score is not None:
            payload.readiness.append({"date": date_key, "score": entry.readiness.score})
    return payload


def reconstruct_merged(payload: CachedPayload, start: str, end: str) -> MergedMapping:
    """Rebuild the merged mapping for [start, end] from a cached payload.

    Every date in the range gets an entry first, so a range beyond the
    cached coverage still yields a gap-free series.  Records outside the
    range are ignored and zero durations become None.
    """
    mapping = MergedMapping()
    for date_key in iter_date_keys(start, end):
        mapping.get_or_create(date_key)

    for raw in payload.sleep:
        date_key = raw.get("date")
        if not _in_range(date_key, start, end):
            continue
        mapping.get_or_create(date_key).sleep = SleepDay(
            date=date_key,
            total=_positive_or_none(raw.get("total")),
            rem=_positive_or_none(raw.get("rem")),
            deep=_positive_or_none(raw.get("deep")),
            light=_positive_or_none(raw.get("light")),
            score=raw.get("score"),
        )
        mapping.record(date_key, SOURCE_CACHE, "sleep.durations", "sleep.score")

    for raw in payload.readiness:
        date_key = raw.get("date")
        if not _in_range(date_key, start, end):
            continue
        mapping.get_or_create(date_key).readiness = ReadinessDay(date=date_key, score=raw.get("score"))
        mapping.record(date_key, SOURCE_CACHE, "readiness.score")

    for raw in payload.activities:
        date_key = raw.get("date")
        if not _in_range(date_key, start, end):
            continue
        mapping.get_or_create(date_key).runs.append(ActivityRecord.from_dict(raw))
        mapping.record(date_key, SOURCE_CACHE, "runs")

    return mapping


def _has_duration(sleep: SleepDay) -> bool:
    return any((sleep.total, sleep.rem, sleep.deep, sleep.light))


def _in_range(date_key: Any, start: str, end: str) -> bool:
    return isinstance(date_key, str) and start <= date_key <= end


def _positive_or_none(value: Any) -> Any:
    return value if value else None


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class FitnessCache:
    """Per-session cache over an async Redis client.

    Usage::

        cache = FitnessCache(await init_redis(settings), ttl_seconds=86400)
        if await cache.is_fresh(sid):
            payload = await cache.get_all(sid)
    """

    def __init__(
        self,
        client: Redis | None,
        ttl_seconds: int = 24 * 60 * 60,
        retry_seconds: int = 60,
        key_prefix: str = "cache",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._ttl = ttl_seconds
        self._retry_seconds = retry_seconds
        self._prefix = key_prefix
        self._clock = clock
        self._unavailable_until = 0.0

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    @property
    def configured(self) -> bool:
        return self._client is not None

    @property
    def available(self) -> bool:
        return self._client is not None and self._clock() >= self._unavailable_until

    def key(self, session_id: str, name: str) -> str:
        return f"{self._prefix}:{session_id}:{name}"

    # ------------------------------------------------------------------
    # Single category
    # ------------------------------------------------------------------

    async def get(self, session_id: str, category: str) -> list[dict[str, Any]] | None:
        """Return the cached array for a category, or None on miss."""
        try:
            client = self._require_client()
            raw = await client.get(self.key(session_id, category))
        except CacheUnavailable:
            return None
        except RedisError as exc:
            self._mark_unavailable("get", exc)
            return None

        if raw is None:
            logger.info("Cache miss: %s for session %s", category, short_id(session_id))
            return None
        return self._decode(session_id, category, raw)

    async def set(
        self,
        session_id: str,
        category: str,
        payload: list[dict[str, Any]],
        ttl: int | None = None,
    ) -> bool:
        """Write one category.  Returns False when nothing was written."""
        try:
            client = self._require_client()
            await client.setex(self.key(session_id, category), ttl or self._ttl, json.dumps(payload))
        except CacheUnavailable:
            return False
        except RedisError as exc:
            self._mark_unavailable("set", exc)
            return False
        logger.info("Cache set: %s for session %s (%d records)", category, short_id(session_id), len(payload))
        return True

    # ------------------------------------------------------------------
    # Freshness
    # ------------------------------------------------------------------

    async def timestamp(self, session_id: str) -> int | None:
        try:
            client = self._require_client()
            raw = await client.get(self.key(session_id, "timestamp"))
        except CacheUnavailable:
            return None
        except RedisError as exc:
            self._mark_unavailable("timestamp", exc)
            return None
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Cache: unreadable timestamp %r for session %s", raw, short_id(session_id))
            return None

    async def is_fresh(self, session_id: str) -> bool:
        """True when the session's shared timestamp is younger than the TTL."""
        written_at = await self.timestamp(session_id)
        if written_at is None:
            return False
        age = int(self._clock()) - written_at
        fresh = age < self._ttl
        logger.info("Cache age for session %s: %ds, fresh: %s", short_id(session_id), age, fresh)
        return fresh

    # ------------------------------------------------------------------
    # Whole session
    # ------------------------------------------------------------------

    async def get_all(self, session_id: str) -> CachedPayload | None:
        """Return all three categories, or None if any one is missing."""
        try:
            client = self._require_client()
            raw_values = await client.mget([self.key(session_id, c) for c in CATEGORIES])
        except CacheUnavailable:
            return None
        except RedisError as exc:
            self._mark_unavailable("get_all", exc)
            return None

        decoded: dict[str, list[dict[str, Any]]] = {}
        for category, raw in zip(CATEGORIES, raw_values):
            value = self._decode(session_id, category, raw) if raw is not None else None
            if value is None:
                logger.info(
                    "Cache incomplete for session %s: %s missing", short_id(session_id), category
                )
                return None
            decoded[category] = value

        logger.info("Cache hit: all categories for session %s", short_id(session_id))
        return CachedPayload(**decoded)

    async def write_all(self, session_id: str, payload: CachedPayload) -> bool:
        """Write the three categories and the timestamp in one transaction."""
        try:
            client = self._require_client()
            async with client.pipeline(transaction=True) as pipe:
                for category, records in payload.by_category().items():
                    pipe.setex(self.key(session_id, category), self._ttl, json.dumps(records))
                pipe.setex(self.key(session_id, "timestamp"), self._ttl, str(int(self._clock())))
                await pipe.execute()
        except CacheUnavailable:
            return False
        except RedisError as exc:
            self._mark_unavailable("write_all", exc)
            return False

        logger.info(
            "Cached %d activities, %d sleep records, %d readiness scores for session %s",
            len(payload.activities),
            len(payload.sleep),
            len(payload.readiness),
            short_id(session_id),
        )
        return True

    async def clear(self, session_id: str) -> int:
        """Delete every key of the session.  Returns the number deleted."""
        try:
            client = self._require_client()
            keys = [key async for key in client.scan_iter(match=f"{self._prefix}:{session_id}:*")]
            deleted = await client.delete(*keys) if keys else 0
        except CacheUnavailable:
            return 0
        except RedisError as exc:
            self._mark_unavailable("clear", exc)
            return 0
        logger.info("Cache cleared: %d keys for session %s", deleted, short_id(session_id))
        return deleted

    async def ping(self) -> bool:
        try:
            client = self._require_client()
            return bool(await client.ping())
        except CacheUnavailable:
            return False
        except RedisError as exc:
            self._mark_unavailable("ping", exc)
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_client(self) -> Redis:
        if self._client is None:
            raise CacheUnavailable("no cache backend configured")
        if self._clock() < self._unavailable_until:
            raise CacheUnavailable("cache backend in retry back-off")
        return self._client

    def _mark_unavailable(self, operation: str, exc: RedisError) -> None:
        self._unavailable_until = self._clock() + self._retry_seconds
        logger.warning(
            "Cache %s failed: %s. Skipping cache for %ds.", operation, exc, self._retry_seconds
        )

    def _decode(self, session_id: str, category: str, raw: str) -> list[dict[str, Any]] | None:
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Cache: undecodable %s for session %s", category, short_id(session_id))
            return None
        if not isinstance(value, list):
            logger.warning("Cache: %s for session %s is not a list", category, short_id(session_id))
            return None
        return value
