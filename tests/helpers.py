"""
In-memory stand-ins for the registry, sink and probes, and a compressed
clock for timers.
"""

import asyncio
import time
from types import SimpleNamespace

from config.constants import ProbeType
from monitoring.probes import BaseProbe
from monitoring.results import CheckResult


# One simulated second lasts this many real seconds.
TIME_SCALE = 0.01


async def fast_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds * TIME_SCALE)


def fast_clock() -> float:
    return time.monotonic() / TIME_SCALE


def make_monitor(
    id=1,
    name=None,
    target="http://example.com",
    probe_type=ProbeType.HTTP,
    interval_seconds=60,
    timeout_seconds=None,
    is_active=True,
    is_deleted=False,
):
    return SimpleNamespace(
        id=id,
        name=name or f"monitor-{id}",
        target=target,
        probe_type=probe_type,
        interval_seconds=interval_seconds,
        timeout_seconds=timeout_seconds,
        is_active=is_active,
        is_deleted=is_deleted,
    )


class FakeRegistry:
    """Dictionary-backed registry with the two lookups the scheduler uses."""

    def __init__(self, monitors=()):
        self.monitors = {m.id: m for m in monitors}
        self.fail = False
        self.lookups = 0

    def add(self, monitor):
        self.monitors[monitor.id] = monitor
        return monitor

    async def find_all_active(self):
        if self.fail:
            raise RuntimeError("registry offline")
        return [m for m in self.monitors.values() if m.is_active and not m.is_deleted]

    async def find_by_id(self, monitor_id):
        self.lookups += 1
        if self.fail:
            raise RuntimeError("registry offline")
        monitor = self.monitors.get(monitor_id)
        if monitor is None or monitor.is_deleted:
            return None
        return monitor


class RecordingSink:
    def __init__(self):
        self.results = []

    async def record(self, result):
        self.results.append(result)
        return True


class FailingSink:
    def __init__(self):
        self.calls = 0

    async def record(self, result):
        self.calls += 1
        raise RuntimeError("disk full")


class StubProbe(BaseProbe):
    """
    Probe that answers UP after ``delay`` seconds, or raises ``exc``.

    Records the monotonic start time of every call and the highest number
    of calls seen running at once.
    """

    default_timeout_field = "http_timeout"

    def __init__(self, settings, probe_type=ProbeType.HTTP, delay=0.0, exc=None):
        super().__init__(settings)
        self.probe_type = probe_type
        self.delay = delay
        self.exc = exc
        self.calls = []
        self.running = 0
        self.max_running = 0

    async def check(self, monitor):
        self.calls.append((monitor.id, time.monotonic()))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.exc is not None:
                raise self.exc
            return CheckResult.up(monitor, 1.5, status_code=200)
        finally:
            self.running -= 1

