"""
Shared fixtures: settings, a compressed-clock timer pool, stand-in
collaborators for the scheduler and a throwaway SQLite database.
"""

import pytest
import pytest_asyncio

from config.settings import DatabaseSettings, MonitoringSettings
from database.manager import DatabaseManager
from monitoring.probes import ProbeSet
from monitoring.timers import TimerPool

from helpers import FakeRegistry, RecordingSink, StubProbe, fast_clock, fast_sleep


@pytest.fixture
def monitoring_settings():
    return MonitoringSettings(
        min_interval=5,
        max_interval=3600,
        default_interval=60,
        batch_delay=0.0,
        run_immediately=True,
    )


@pytest.fixture
def fast_timers():
    return TimerPool(sleep=fast_sleep, clock=fast_clock)


@pytest.fixture
def stub_probe(monitoring_settings):
    return StubProbe(monitoring_settings)


@pytest.fixture
def probe_set(stub_probe):
    return ProbeSet([stub_probe])


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def database_settings(tmp_path):
    return DatabaseSettings(type="sqlite", sqlite_path=tmp_path / "monitor.db")


@pytest_asyncio.fixture
async def db_manager(database_settings):
    manager = DatabaseManager(database_settings)
    await manager.initialize()
    yield manager
    await manager.close()
