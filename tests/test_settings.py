"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest

from timesheetz.config import (
    DatabaseSettings,
    DataMode,
    LoggingSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)


class TestDatabaseSettings:
    """Tests for store selection."""

    def test_defaults_to_local(self):
        settings = DatabaseSettings()
        assert settings.data_mode == DataMode.LOCAL
        assert settings.postgres_url is None
        assert settings.raise_on_partial_write is True

    def test_dual_requires_postgres_url(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_DATA_MODE", "dual")
        with pytest.raises(ValueError, match="requires TIMESHEETZ_POSTGRES_URL"):
            DatabaseSettings()

    def test_dual_with_url(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_DATA_MODE", "dual")
        monkeypatch.setenv("TIMESHEETZ_POSTGRES_URL", " postgresql://u:p@db:5432/ts ")
        settings = DatabaseSettings()
        assert settings.data_mode == DataMode.DUAL
        assert settings.postgres_url == "postgresql://u:p@db:5432/ts"

    def test_blank_url_means_unset(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_POSTGRES_URL", "   ")
        assert DatabaseSettings().postgres_url is None

    def test_rejects_non_postgres_url(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_POSTGRES_URL", "mysql://db/ts")
        with pytest.raises(ValueError, match="must start with postgresql://"):
            DatabaseSettings()

    def test_pool_bounds(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_POOL_MIN_SIZE", "8")
        monkeypatch.setenv("TIMESHEETZ_POOL_MAX_SIZE", "4")
        with pytest.raises(ValueError, match="pool_min_size"):
            DatabaseSettings()

    def test_development_mode_uses_working_directory(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TIMESHEETZ_DEVELOPMENT_MODE", "true")
        assert DatabaseSettings().database_path == Path.cwd() / "timesheet_dev.db"

    def test_explicit_sqlite_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TIMESHEETZ_SQLITE_PATH", str(tmp_path / "ts.db"))
        assert DatabaseSettings().database_path == tmp_path / "ts.db"


class TestOtherSettings:
    """Tests for the sync and logging groups."""

    def test_sync_interval_lower_bound(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_SYNC_INTERVAL_SECONDS", "0.5")
        with pytest.raises(ValueError):
            SyncSettings()

    def test_log_level_is_normalized(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_LOG_LEVEL", "debug")
        assert LoggingSettings().level == "DEBUG"

    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_LOG_LEVEL", "chatty")
        with pytest.raises(ValueError, match="Unknown log level"):
            LoggingSettings()


class TestValidateAll:
    """Tests for the startup check."""

    def test_all_valid(self):
        results = validate_all_settings()
        assert results == {"database": True, "sync": True, "hours": True, "logging": True}

    def test_reports_broken_group(self, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_DATA_MODE", "remote")
        get_settings.cache_clear()
        results = validate_all_settings()
        assert results["database"] is False
        assert "requires TIMESHEETZ_POSTGRES_URL" in results["database_error"]
        assert results["sync"] is True
