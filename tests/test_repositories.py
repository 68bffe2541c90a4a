from dataclasses import replace
from datetime import timedelta

import pytest
from pydantic import ValidationError

from config.constants import CheckStatus, ProbeType
from database.repositories import CheckResultRepository, MonitorRepository
from database.schemas import MonitorCreate, MonitorUpdate
from exceptions.database import DuplicateRecordError, RecordNotFoundError
from exceptions.validation import InvalidIntervalError, InvalidTargetError
from monitoring.results import CheckResult
from utils.helpers import TimeHelper


@pytest.fixture
def monitors(db_manager, monitoring_settings):
    return MonitorRepository(db_manager, monitoring_settings)


@pytest.fixture
def results(db_manager):
    return CheckResultRepository(db_manager)


def http_monitor(name="site", **overrides):
    data = {"name": name, "target": "https://example.com", "probe_type": "http"}
    data.update(overrides)
    return MonitorCreate(**data)


class TestMonitorRepository:

    @pytest.mark.asyncio
    async def test_create_and_find(self, monitors):
        created = await monitors.create(http_monitor(interval_seconds=120))

        found = await monitors.find_by_id(created.id)
        assert found.name == "site"
        assert found.probe_type == ProbeType.HTTP
        assert found.interval_seconds == 120
        assert found.is_active is True

    @pytest.mark.asyncio
    async def test_default_interval_applies(self, monitors, monitoring_settings):
        created = await monitors.create(http_monitor())

        assert created.interval_seconds == monitoring_settings.default_interval

    @pytest.mark.asyncio
    async def test_https_is_stored_as_http(self, monitors):
        created = await monitors.create(http_monitor(probe_type="https"))

        assert created.probe_type == ProbeType.HTTP

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, monitors):
        await monitors.create(http_monitor())

        with pytest.raises(DuplicateRecordError):
            await monitors.create(http_monitor(target="https://example.org"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("probe_type,target", [
        ("http", "example.com"),
        ("tcp", "nohost"),
        ("tcp", "db:99999"),
        ("ping", "bad host!"),
    ])
    async def test_invalid_targets_rejected(self, monitors, probe_type, target):
        with pytest.raises(InvalidTargetError):
            await monitors.create(http_monitor(probe_type=probe_type, target=target))

        assert await monitors.count() == 0

    @pytest.mark.asyncio
    async def test_interval_out_of_range_rejected(self, monitors):
        with pytest.raises(InvalidIntervalError):
            await monitors.create(http_monitor(interval_seconds=1))

    def test_unknown_probe_type_rejected_by_schema(self):
        with pytest.raises(ValidationError):
            MonitorCreate(name="x", target="x", probe_type="dns")

    @pytest.mark.asyncio
    async def test_update_revalidates_target_against_new_type(self, monitors):
        created = await monitors.create(http_monitor())

        with pytest.raises(InvalidTargetError):
            await monitors.update(created.id, MonitorUpdate(probe_type="tcp"))

        updated = await monitors.update(
            created.id, MonitorUpdate(probe_type="tcp", target="example.com:443")
        )
        assert updated.probe_type == ProbeType.TCP
        assert updated.target == "example.com:443"

    @pytest.mark.asyncio
    async def test_update_missing_monitor(self, monitors):
        with pytest.raises(RecordNotFoundError):
            await monitors.update(999, MonitorUpdate(is_active=False))

    @pytest.mark.asyncio
    async def test_deactivated_monitor_leaves_active_set(self, monitors):
        first = await monitors.create(http_monitor(name="a"))
        second = await monitors.create(http_monitor(name="b"))

        await monitors.update(first.id, MonitorUpdate(is_active=False))

        active = await monitors.find_all_active()
        assert [m.id for m in active] == [second.id]
        assert await monitors.count() == 2
        assert await monitors.count(active_only=True) == 1
        assert len(await monitors.find_all(include_inactive=False)) == 1

    @pytest.mark.asyncio
    async def test_soft_delete(self, monitors):
        created = await monitors.create(http_monitor())

        assert await monitors.delete(created.id) is True
        assert await monitors.delete(created.id) is False
        assert await monitors.find_by_id(created.id) is None
        assert await monitors.find_all_active() == []

        # the name is free again once deleted
        again = await monitors.create(http_monitor())
        assert again.id != created.id
        assert (await monitors.find_by_name("site")).id == again.id


class TestCheckResultRepository:

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, monitors, results):
        monitor = await monitors.create(http_monitor())
        now = TimeHelper.get_utc_now()

        for minutes_ago in (10, 5, 1):
            result = CheckResult.up(monitor, 20.0, status_code=200)
            await results.add(replace(result, checked_at=now - timedelta(minutes=minutes_ago)))

        history = await results.find_by_monitor(monitor.id, limit=2)

        assert len(history) == 2
        assert history[0].checked_at > history[1].checked_at
        assert await results.count(monitor.id) == 3

    @pytest.mark.asyncio
    async def test_results_survive_monitor_deletion(self, monitors, results):
        monitor = await monitors.create(http_monitor())
        await monitors.delete(monitor.id)

        await results.add(CheckResult.up(monitor, 5.0, status_code=200))

        assert await results.count(monitor.id) == 1

    @pytest.mark.asyncio
    async def test_delete_older_than(self, monitors, results):
        monitor = await monitors.create(http_monitor())
        now = TimeHelper.get_utc_now()
        base = CheckResult.up(monitor, 5.0, status_code=200)

        await results.add(replace(base, checked_at=now - timedelta(days=40)))
        await results.add(replace(base, checked_at=now - timedelta(days=31)))
        await results.add(replace(base, checked_at=now - timedelta(days=1)))

        assert await results.delete_older_than(now - timedelta(days=30)) == 2
        assert await results.count() == 1

    @pytest.mark.asyncio
    async def test_summarize(self, monitors, results):
        monitor = await monitors.create(http_monitor())

        await results.add(CheckResult.up(monitor, 10.0, status_code=200))
        await results.add(CheckResult.up(monitor, 30.0, status_code=200))
        await results.add(CheckResult.down(monitor, "HTTP 503: Service Unavailable", 5.0, status_code=503))
        await results.add(CheckResult.error(monitor, "boom"))

        summary = await results.summarize(monitor.id, hours=24)

        assert summary["total_checks"] == 4
        assert summary["up"] == 2
        assert summary["down"] == 1
        assert summary["error"] == 1
        assert summary["uptime_percentage"] == 50.0
        assert summary["avg_response_time"] == 20.0
        assert summary["min_response_time"] == 10.0
        assert summary["max_response_time"] == 30.0
        assert summary["last_status"] in {s.value for s in CheckStatus}

    @pytest.mark.asyncio
    async def test_summarize_without_history(self, results):
        summary = await results.summarize(12345)

        assert summary["total_checks"] == 0
        assert summary["uptime_percentage"] is None
        assert summary["last_status"] is None

    @pytest.mark.asyncio
    async def test_find_recent_spans_monitors(self, monitors, results):
        site = await monitors.create(http_monitor())
        db = await monitors.create(MonitorCreate(name="db", target="db.internal:5432", probe_type="tcp"))
        now = TimeHelper.get_utc_now()

        await results.add(replace(CheckResult.up(site, 12.0, status_code=200), checked_at=now - timedelta(minutes=9)))
        await results.add(replace(CheckResult.up(db, 3.0), checked_at=now - timedelta(minutes=6)))
        await results.add(replace(CheckResult.error(site, "timeout"), checked_at=now - timedelta(minutes=2)))

        recent = await results.find_recent(limit=2)

        assert [r.monitor_id for r in recent] == [site.id, db.id]
        assert recent[0].status == CheckStatus.ERROR
        assert len(await results.find_recent()) == 3

    @pytest.mark.asyncio
    async def test_system_summary(self, monitors, results):
        site = await monitors.create(http_monitor())
        db = await monitors.create(MonitorCreate(name="db", target="db.internal:5432", probe_type="tcp"))
        now = TimeHelper.get_utc_now()

        await results.add(CheckResult.up(site, 40.0, status_code=200))
        await results.add(CheckResult.up(db, 2.0))
        await results.add(CheckResult.down(db, "Connection refused", 1.0))
        await results.add(replace(CheckResult.up(site, 900.0, status_code=200), checked_at=now - timedelta(hours=30)))

        summary = await results.system_summary(hours=24)

        assert summary["monitors_checked"] == 2
        assert summary["total_checks"] == 3
        assert summary["up"] == 2
        assert summary["down"] == 1
        assert summary["uptime_percentage"] == 66.67
        assert summary["avg_response_time"] == 21.0
        assert summary["min_response_time"] == 2.0
        assert summary["max_response_time"] == 40.0

    @pytest.mark.asyncio
    async def test_system_summary_without_history(self, results):
        summary = await results.system_summary()

        assert summary["monitors_checked"] == 0
        assert summary["total_checks"] == 0
        assert summary["uptime_percentage"] is None
        assert summary["max_response_time"] is None
