"""Load, validate, and hot-reload the merge configuration.

The config lives in ``merge_config.yaml`` alongside this module.  It holds the
source-client tunables (page sizes, ceilings, windows) and the distance unit
used by the aggregation adapter.  Environment-level settings (credentials,
Redis URL, TTLs) live in ``src.config`` instead.

Usage::

    from src.fitness.config_loader import get_merge_config

    config = get_merge_config()
    config.strava.max_pages                  # 3
    config.units.meters_per_distance_unit    # 1609.34
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("stridesleep.fitness.config")

_CONFIG_PATH = Path(__file__).parent / "merge_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class StravaConfig:
    """Activity listing settings."""

    page_size: int = 200
    max_pages: int = 3
    activity_types: list[str] = field(default_factory=lambda: ["Run"])
    cadence_multiplier: int = 2


@dataclass
class OuraConfig:
    """Sleep/readiness listing settings."""

    sleep_window_extension_days: int = 1
    max_pages: int = 10


@dataclass
class UnitsConfig:
    meters_per_distance_unit: float = 1609.34


@dataclass
class MergeConfig:
    """Complete, validated merge configuration.

    Attributes:
        version:          Config schema version string.
        strava:           Activity source settings.
        oura:             Sleep/readiness source settings.
        units:            Distance unit used for pace and row distances.
    """

    version: str
    strava: StravaConfig
    oura: OuraConfig
    units: UnitsConfig


class ConfigValidationError(ValueError):
    """Raised when merge_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Merge config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _positive_int(section: dict, key: str, default: int, name: str, errors: list[str]) -> int:
    value = section.get(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors.append(f"{name}.{key} must be an integer, got {value!r}")
        return default
    if number < 1:
        errors.append(f"{name}.{key} = {number} must be >= 1")
    return number


def _validate_and_build(raw: dict) -> MergeConfig:
    """Validate the raw YAML dict and construct a MergeConfig.

    Raises:
        ConfigValidationError: If any field is invalid.
    """
    errors: list[str] = []

    strava_raw = raw.get("strava") or {}
    activity_types = strava_raw.get("activity_types", ["Run"])
    if not isinstance(activity_types, list) or not activity_types:
        errors.append("strava.activity_types must be a non-empty list")
        activity_types = ["Run"]
    strava = StravaConfig(
        page_size=_positive_int(strava_raw, "page_size", 200, "strava", errors),
        max_pages=_positive_int(strava_raw, "max_pages", 3, "strava", errors),
        activity_types=[str(t) for t in activity_types],
        cadence_multiplier=_positive_int(strava_raw, "cadence_multiplier", 2, "strava", errors),
    )

    oura_raw = raw.get("oura") or {}
    extension = oura_raw.get("sleep_window_extension_days", 1)
    if not isinstance(extension, int) or extension < 0:
        errors.append(f"oura.sleep_window_extension_days must be a non-negative integer, got {extension!r}")
        extension = 1
    oura = OuraConfig(
        sleep_window_extension_days=extension,
        max_pages=_positive_int(oura_raw, "max_pages", 10, "oura", errors),
    )

    units_raw = raw.get("units") or {}
    try:
        meters = float(units_raw.get("meters_per_distance_unit", 1609.34))
    except (TypeError, ValueError):
        errors.append("units.meters_per_distance_unit must be a number")
        meters = 1609.34
    if meters <= 0:
        errors.append(f"units.meters_per_distance_unit = {meters} must be > 0")
    units = UnitsConfig(meters_per_distance_unit=meters)

    if errors:
        raise ConfigValidationError(
            f"merge_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return MergeConfig(
        version=str(raw.get("version", "1.0")),
        strava=strava,
        oura=oura,
        units=units,
    )


def load_merge_config(path: Path | None = None) -> MergeConfig:
    """Load and validate the merge config from disk.

    Args:
        path: Override path to YAML. Uses the bundled merge_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    config = _validate_and_build(_load_yaml(target))
    logger.info("Loaded merge config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: MergeConfig | None = None
_config_lock = threading.Lock()


def get_merge_config() -> MergeConfig:
    """Return the global MergeConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_merge_config()
    return _config


def reload_merge_config(path: Path | None = None) -> MergeConfig:
    """Reload the merge config from disk and replace the global singleton.

    If validation fails the old config is retained and the error is re-raised.
    """
    global _config
    new_config = load_merge_config(path)
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded merge config: %s → %s", old_version, new_config.version)
    return new_config
