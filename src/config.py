"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Stride & Sleep"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Strava ---
    strava_client_id: str = ""
    strava_client_secret: str = ""
    strava_api_base: str = "https://www.strava.com/api/v3"
    strava_oauth_url: str = "https://www.strava.com/oauth/token"

    # --- Oura ---
    oura_api_base: str = "https://api.ouraring.com"

    # --- Upstream HTTP ---
    upstream_timeout_seconds: float = 30.0

    # --- Cache (Redis) ---
    redis_url: str = ""  # empty disables caching: every read is a miss
    cache_ttl_seconds: int = 24 * 60 * 60
    cache_retry_seconds: int = 60  # back-off after a Redis error
    cache_key_prefix: str = "cache"

    # --- Data range ---
    default_start_date: str = "2025-12-01"
    default_end_date: str = "2025-12-31"
    history_years: int = 2

    # --- Sessions ---
    session_cookie_name: str = "sid"

    # --- Diagnostics ---
    trace_dates: list[str] = []  # DateKeys whose merge provenance is logged

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
