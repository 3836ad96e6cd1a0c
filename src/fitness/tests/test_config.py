"""Tests for merge_config.yaml loading and validation, and app settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config import Settings
from src.fitness.config_loader import (
    ConfigValidationError,
    MergeConfig,
    _validate_and_build,
    get_merge_config,
    load_merge_config,
    reload_merge_config,
)


class TestConfigLoading:
    """Tests for loading merge_config.yaml."""

    def test_load_default_config(self, merge_config: MergeConfig) -> None:
        """The bundled merge_config.yaml loads without errors."""
        assert merge_config.version == "1.0"

    def test_strava_paging(self, merge_config: MergeConfig) -> None:
        assert merge_config.strava.page_size == 200
        assert merge_config.strava.max_pages == 3
        assert merge_config.strava.activity_types == ["Run"]
        assert merge_config.strava.cadence_multiplier == 2

    def test_oura_window_extension(self, merge_config: MergeConfig) -> None:
        assert merge_config.oura.sleep_window_extension_days == 1

    def test_mile_conversion(self, merge_config: MergeConfig) -> None:
        assert merge_config.units.meters_per_distance_unit == 1609.34

    def test_load_nonexistent_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_merge_config(path=Path("/nonexistent/path/merge_config.yaml"))


class TestConfigValidation:
    """Tests for config validation logic."""

    def test_empty_config_uses_defaults(self) -> None:
        config = _validate_and_build({})
        assert config.strava.page_size == 200
        assert config.oura.max_pages == 10

    def test_zero_page_size_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="page_size"):
            _validate_and_build({"strava": {"page_size": 0}})

    def test_non_numeric_ceiling_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="max_pages"):
            _validate_and_build({"strava": {"max_pages": "many"}})

    def test_empty_activity_types_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="activity_types"):
            _validate_and_build({"strava": {"activity_types": []}})

    def test_negative_extension_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="sleep_window_extension_days"):
            _validate_and_build({"oura": {"sleep_window_extension_days": -1}})

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "merge_config.yaml"
        config_file.write_text("strava: [unclosed")
        with pytest.raises(ConfigValidationError, match="YAML parse error"):
            load_merge_config(path=config_file)

    def test_hot_reload(self, tmp_path: Path) -> None:
        """reload_merge_config() replaces the global singleton."""
        config_file = tmp_path / "merge_config.yaml"
        config_file.write_text(
            'version: "2.0-test"\n'
            "strava:\n"
            "  page_size: 50\n"
            "  max_pages: 2\n"
            "  activity_types: [Run, TrailRun]\n"
        )
        try:
            new_config = reload_merge_config(path=config_file)
            assert new_config.version == "2.0-test"
            assert get_merge_config() is new_config
            assert get_merge_config().strava.activity_types == ["Run", "TrailRun"]
        finally:
            reload_merge_config()

    def test_failed_reload_keeps_old_config(self, tmp_path: Path) -> None:
        before = get_merge_config()
        config_file = tmp_path / "merge_config.yaml"
        config_file.write_text("strava:\n  page_size: -5\n")
        with pytest.raises(ConfigValidationError):
            reload_merge_config(path=config_file)
        assert get_merge_config() is before


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.cache_ttl_seconds == 86400
        assert settings.default_start_date == "2025-12-01"
        assert settings.default_end_date == "2025-12-31"
        assert settings.session_cookie_name == "sid"
        assert settings.redis_url == ""

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_TTL_SECONDS", "3600")
        monkeypatch.setenv("TRACE_DATES", '["2025-12-30"]')
        settings = Settings(_env_file=None)
        assert settings.cache_ttl_seconds == 3600
        assert settings.trace_dates == ["2025-12-30"]
