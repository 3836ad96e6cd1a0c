"""Stride & Sleep merge engine.

This package reconciles Strava runs with Oura sleep and readiness into one
per-date series, caches it per session, and renders daily rows.

Subpackages:
    adapters/: Strava and Oura source clients
    sync/    : Cache-first read, refresh and logout orchestration

Core modules:
    base         : Canonical records, credentials, DateKey helpers, errors
    merge_engine : MergedMapping and the overlay rules
    cache        : Redis session cache, flatten/reconstruct transforms
    aggregation  : Distance-weighted daily rows
    config_loader: Load/validate/hot-reload merge_config.yaml
    session      : In-process session registry
"""

from src.fitness.base import (
    ActivityRecord,
    CredentialInvalid,
    FitnessDataError,
    MergedDayEntry,
    OAuthTokens,
    ReadinessDay,
    SessionCredentials,
    SleepDay,
)
from src.fitness.config_loader import MergeConfig, get_merge_config

__all__ = [
    "ActivityRecord",
    "SleepDay",
    "ReadinessDay",
    "MergedDayEntry",
    "OAuthTokens",
    "SessionCredentials",
    "FitnessDataError",
    "CredentialInvalid",
    "MergeConfig",
    "get_merge_config",
]
