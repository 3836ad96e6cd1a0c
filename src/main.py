"""Stride & Sleep API: FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 3000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.fitness.adapters import OuraAdapter, StravaAdapter
from src.fitness.cache import FitnessCache
from src.fitness.session import SessionRegistry
from src.fitness.sync.orchestrator import FitnessOrchestrator
from src.middleware.session import SessionMiddleware
from src.routers import auth, data, health
from src.services.http import close_http_client, init_http_client
from src.services.redis_client import close_redis, init_redis

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("stridesleep")


def build_orchestrator(settings: Settings, http_client=None, redis_client=None) -> FitnessOrchestrator:
    cache = FitnessCache(
        redis_client,
        ttl_seconds=settings.cache_ttl_seconds,
        retry_seconds=settings.cache_retry_seconds,
        key_prefix=settings.cache_key_prefix,
    )
    return FitnessOrchestrator(
        strava=StravaAdapter(http_client=http_client, settings=settings),
        oura=OuraAdapter(http_client=http_client, settings=settings),
        cache=cache,
        settings=settings,
    )


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings: Settings = app.state.settings
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(
        "Starting Stride & Sleep API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    http_client = await init_http_client(settings)
    redis_client = await init_redis(settings)
    app.state.orchestrator = build_orchestrator(settings, http_client, redis_client)
    yield
    await app.state.orchestrator.drain()
    await close_redis()
    await close_http_client()
    logger.info("Stride & Sleep API shut down")


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Stride & Sleep API",
        description="Strava runs merged with Oura sleep and readiness, one row per day.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.sessions = SessionRegistry()

    # ---------- Middleware (last added runs outermost) ----------

    app.add_middleware(SessionMiddleware, registry=app.state.sessions, settings=settings)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(data.router)

    return app


app = create_app()
