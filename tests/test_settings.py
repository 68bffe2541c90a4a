from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import DatabaseSettings, DatabaseType, MonitoringSettings, Settings


class TestMonitoringSettings:

    def test_defaults(self):
        settings = MonitoringSettings()

        assert settings.default_interval == 60
        assert settings.min_interval == 5
        assert settings.http_timeout == 30.0
        assert settings.treat_client_errors_as_up is True

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("MONITOR_DEFAULT_INTERVAL", "120")
        monkeypatch.setenv("MONITOR_TREAT_CLIENT_ERRORS_AS_UP", "false")

        settings = MonitoringSettings()

        assert settings.default_interval == 120
        assert settings.treat_client_errors_as_up is False

    def test_bounds_must_be_ordered(self):
        with pytest.raises(ValidationError):
            MonitoringSettings(min_interval=600, max_interval=300, default_interval=400)

        with pytest.raises(ValidationError):
            MonitoringSettings(min_interval=10, max_interval=600, default_interval=5)

    def test_validate_interval_clamps(self):
        settings = MonitoringSettings(min_interval=10, max_interval=600, default_interval=60)

        assert settings.validate_interval(1) == 10
        assert settings.validate_interval(60) == 60
        assert settings.validate_interval(10_000) == 600


class TestDatabaseSettings:

    def test_sqlite_url(self, tmp_path):
        settings = DatabaseSettings(type="sqlite", sqlite_path=tmp_path / "nested" / "monitor")

        assert settings.is_sqlite
        assert settings.url == f"sqlite+aiosqlite:///{tmp_path / 'nested' / 'monitor.db'}"
        assert (tmp_path / "nested").is_dir()

    def test_memory_url(self):
        settings = DatabaseSettings(type="sqlite", sqlite_path=Path(":memory:"))

        assert settings.url == "sqlite+aiosqlite:///:memory:"

    def test_postgres_url(self):
        settings = DatabaseSettings(
            type=DatabaseType.POSTGRESQL, host="db", port=5433, name="uptime", user="svc", password="s3cret"
        )

        assert settings.url == "postgresql+asyncpg://svc:s3cret@db:5433/uptime"


def test_settings_to_dict_hides_password():
    settings = Settings(database=DatabaseSettings(password="hunter2"))

    data = settings.to_dict()

    assert "password" not in data["database"]
    assert data["monitoring"]["default_interval"] == settings.monitoring.default_interval
