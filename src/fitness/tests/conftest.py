"""Shared fixtures, mock upstream responses and an in-memory Redis for tests."""

from __future__ import annotations

import fnmatch
import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.config import Settings
from src.fitness.adapters.oura import OuraAdapter
from src.fitness.adapters.strava import StravaAdapter
from src.fitness.base import OAuthTokens, SessionCredentials
from src.fitness.cache import FitnessCache
from src.fitness.config_loader import MergeConfig, load_merge_config
from src.fitness.sync.orchestrator import FitnessOrchestrator

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_SESSION_ID = "sess-0f3c9a7e-41d2"
TEST_TODAY = date(2025, 12, 15)
TEST_NOW = 1_765_800_000.0  # 2025-12-15T12:00:00Z


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, now: float = TEST_NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._ops: list[tuple[str, int, str]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._ops.clear()

    def setex(self, key: str, ttl: int, value: str) -> "FakePipeline":
        self._ops.append((key, ttl, value))
        return self

    async def execute(self) -> list[bool]:
        self._redis._check()
        for key, ttl, value in self._ops:
            self._redis.store[key] = value
            self._redis.ttls[key] = ttl
        return [True] * len(self._ops)


class FakeRedis:
    """The subset of ``redis.asyncio.Redis`` used by FitnessCache, in memory.

    Set ``fail = True`` to make every command raise a connection error.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False
        self.calls = 0

    def _check(self) -> None:
        self.calls += 1
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.store.get(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        self._check()
        return [self.store.get(k) for k in keys]

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def scan_iter(self, match: str = "*"):
        self._check()
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self) -> bool:
        self._check()
        return True


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def json_response(payload: Any, status_code: int = 200, url: str = "https://upstream.test/") -> httpx.Response:
    """A real httpx.Response so raise_for_status() behaves as in production."""
    return httpx.Response(status_code, json=payload, request=httpx.Request("GET", url))


def load_fixture(name: str) -> Any:
    return json.loads((FIXTURES_DIR / name).read_text())


def make_run(index: int, **overrides: Any) -> dict:
    """A raw Strava run, distinct per index."""
    raw = {
        "id": 1000 + index,
        "type": "Run",
        "name": f"Run {index}",
        "distance": 5000.0,
        "moving_time": 1500,
        "start_date": "2025-12-02T12:00:00Z",
        "start_date_local": "2025-12-02T07:00:00Z",
        "average_heartrate": 150.0,
        "max_heartrate": 170.0,
        "average_cadence": 85.0,
    }
    raw.update(overrides)
    return raw


def oura_handler(routes: dict[str, Any]):
    """Side effect for a mocked ``http_client.get`` dispatching on the URL suffix.

    A route value may be a payload dict, an httpx.Response, or an exception.
    """

    async def _get(url: str, **kwargs: Any) -> httpx.Response:
        for suffix, value in routes.items():
            if url.endswith(suffix):
                if isinstance(value, Exception):
                    raise value
                if isinstance(value, httpx.Response):
                    return value
                return json_response(value, url=url)
        return json_response({"data": [], "next_token": None}, url=url)

    return _get


def strava_handler(pages: list[Any], token_payload: dict | None = None):
    """Side effect for a mocked ``http_client.request`` serving activity pages."""

    async def _request(method: str, url: str, **kwargs: Any) -> httpx.Response:
        if url.endswith("/oauth/token"):
            return json_response(token_payload or {}, url=url)
        page = kwargs["params"]["page"]
        if page > len(pages):
            return json_response([], url=url)
        value = pages[page - 1]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, httpx.Response):
            return value
        return json_response(value, url=url)

    return _request


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def merge_config() -> MergeConfig:
    """Load the real merge config for tests."""
    return load_merge_config()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        strava_client_id="test_client_id",
        strava_client_secret="test_client_secret",
        redis_url="redis://cache.test:6379/0",
        trace_dates=[],
    )


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@pytest.fixture
def credentials() -> SessionCredentials:
    """A session with a valid Strava token and an Oura token."""
    return SessionCredentials(
        session_id=TEST_SESSION_ID,
        strava=OAuthTokens(
            access_token="strava-access",
            refresh_token="strava-refresh",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=6),
        ),
        oura=OAuthTokens(access_token="oura-access"),
    )


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis, clock: FakeClock) -> FitnessCache:
    return FitnessCache(fake_redis, ttl_seconds=86400, retry_seconds=60, clock=clock)


# ---------------------------------------------------------------------------
# Upstream fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def http_client() -> MagicMock:
    """A mocked httpx.AsyncClient serving the JSON fixtures."""
    client = MagicMock()
    client.request = AsyncMock(side_effect=strava_handler([load_fixture("strava_activities.json")]))
    client.get = AsyncMock(
        side_effect=oura_handler(
            {
                "/daily_sleep": load_fixture("oura_daily_sleep.json"),
                "/sleep": load_fixture("oura_sleep.json"),
                "/daily_readiness": load_fixture("oura_daily_readiness.json"),
            }
        )
    )
    return client


@pytest.fixture
def strava_adapter(http_client: MagicMock, merge_config: MergeConfig, settings: Settings) -> StravaAdapter:
    return StravaAdapter(http_client=http_client, config=merge_config, settings=settings)


@pytest.fixture
def oura_adapter(http_client: MagicMock, merge_config: MergeConfig, settings: Settings) -> OuraAdapter:
    return OuraAdapter(http_client=http_client, config=merge_config, settings=settings)


@pytest.fixture
def orchestrator(
    strava_adapter: StravaAdapter,
    oura_adapter: OuraAdapter,
    cache: FitnessCache,
    settings: Settings,
    merge_config: MergeConfig,
) -> FitnessOrchestrator:
    return FitnessOrchestrator(
        strava=strava_adapter,
        oura=oura_adapter,
        cache=cache,
        settings=settings,
        config=merge_config,
        today=lambda: TEST_TODAY,
    )
