"""
============================================================================
UPTIME MONITOR - MONITOR SCHEDULER
============================================================================
Owns one periodic timer per active monitor and runs the probe for that
monitor every time its timer fires.

Each fire re-reads the monitor from the registry, so a monitor that was
deactivated or deleted since it was scheduled is skipped (and its timer
removed), and a changed probe type or target takes effect on the next
fire. Every probe outcome is handed to the result sink; the sink never
raises and probe failures become ERROR results, so a single fire can
never break the timer that drives it.

Checks for one monitor never overlap: the timer arms its next fire only
after the current one completes, and a per-monitor lock covers the
window where a replacement timer exists next to a fire of the old one.

Checks for one monitor are also never closer together than its interval.
The last dispatch time is kept per monitor id and outlives the timer, so
a new timer (reschedule, unschedule then schedule, restart) waits out the
rest of the interval. A manual check pushes the live timer back by a full
interval.

Lifecycle
---------
    scheduler = MonitorScheduler(registry, sink, probes, settings)
    await scheduler.start()
    scheduler.schedule_monitor(monitor)      # after a create / update
    scheduler.unschedule_monitor(monitor_id) # after a delete
    await scheduler.stop()
============================================================================
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, AsyncIterator, Dict, List, Optional

from config.constants import CheckStatus, ProbeType
from config.settings import MonitoringSettings
from exceptions.monitoring import (
    SchedulerAlreadyRunningError,
    SchedulerError,
    SchedulerNotRunningError,
)
from monitoring.probes import ProbeSet
from monitoring.results import CheckResult
from monitoring.timers import PeriodicTask, TimerPool
from utils.helpers import BatchProcessor, TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


def _is_schedulable(monitor) -> bool:
    return bool(getattr(monitor, "is_active", False)) and not getattr(monitor, "is_deleted", False)


# ============================================================================
# SCHEDULE STATE
# ============================================================================

@dataclass
class ScheduleEntry:
    """
    One scheduled monitor.

    Attributes
    ----------
    monitor_id : int
        Registry id of the monitor.
    interval : int
        Effective interval in seconds, after clamping.
    handle : PeriodicTask
        The timer driving this monitor.
    last_dispatch_at : Optional[datetime]
        Wall-clock time of the last check, for status output.
    manual_dispatch : bool
        True when the last check was a manual one.
    """
    monitor_id: int
    interval: int
    handle: PeriodicTask
    last_dispatch_at: Optional[datetime] = None
    manual_dispatch: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitor_id": self.monitor_id,
            "interval": self.interval,
            "fire_count": self.handle.fire_count,
            "last_check": self.last_dispatch_at.isoformat() if self.last_dispatch_at else None,
        }


@dataclass
class SchedulerStats:
    """Counters since the scheduler object was created."""
    total_checks: int = 0
    errors: int = 0
    skipped: int = 0
    persist_failures: int = 0
    last_check: Optional[datetime] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_checks": self.total_checks,
            "errors": self.errors,
            "skipped": self.skipped,
            "persist_failures": self.persist_failures,
            "last_check": self.last_check.isoformat() if self.last_check else None,
        }


# ============================================================================
# SCHEDULER
# ============================================================================

class MonitorScheduler:
    """
    Periodic check scheduler for all active monitors.

    Parameters
    ----------
    registry : MonitorRepository
        Source of truth for monitors. Only ``find_all_active`` and
        ``find_by_id`` are used.
    sink : ResultSink
        Receives every check result.
    probes : ProbeSet
        Probe executors by probe type.
    settings : MonitoringSettings
        Interval bounds, batching and lifecycle options.
    timers : TimerPool, optional
        Timer factory; tests pass one with a compressed clock.
    """

    def __init__(
        self,
        registry,
        sink,
        probes: ProbeSet,
        settings: MonitoringSettings,
        timers: Optional[TimerPool] = None,
    ):
        self.registry = registry
        self.sink = sink
        self.probes = probes
        self.settings = settings
        self.timers = timers or TimerPool()

        self.stats = SchedulerStats()

        self._entries: Dict[int, ScheduleEntry] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_refs: Dict[int, int] = {}
        # pool clock reading of the last dispatch, kept across timers
        self._last_dispatch: Dict[int, float] = {}
        self._running = False
        self._started_at: Optional[datetime] = None
        self._reconcile_handle: Optional[PeriodicTask] = None
        self._lifecycle_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # PROPERTIES
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_timer_count(self) -> int:
        return len(self._entries)

    def is_scheduled(self, monitor_id: int) -> bool:
        return monitor_id in self._entries

    def scheduled_ids(self) -> List[int]:
        return sorted(self._entries)

    def get_entry(self, monitor_id: int) -> Optional[ScheduleEntry]:
        return self._entries.get(monitor_id)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> int:
        """
        Load every active monitor and schedule it.

        Returns
        -------
        int
            Number of monitors scheduled.

        Raises
        ------
        SchedulerAlreadyRunningError
            When already running.
        SchedulerError
            When the registry cannot be read. The scheduler stays stopped.
        """
        async with self._lifecycle_lock:
            return await self._start()

    async def stop(self) -> int:
        """
        Cancel every timer. Checks already running finish on their own;
        use ``drain()`` to wait for them.

        Returns
        -------
        int
            Number of monitor timers cancelled.

        Raises
        ------
        SchedulerNotRunningError
            When not running.
        """
        async with self._lifecycle_lock:
            return await self._stop()

    async def restart(self) -> int:
        """
        Stop, wait ``restart_delay`` seconds, then start.

        Raises
        ------
        SchedulerNotRunningError
            When not running; nothing is started.
        """
        async with self._lifecycle_lock:
            await self._stop()

            if self.settings.restart_delay > 0:
                await asyncio.sleep(self.settings.restart_delay)

            return await self._start()

    async def _start(self) -> int:
        if self._running:
            raise SchedulerAlreadyRunningError()

        logger.info("[Scheduler] Starting…")

        try:
            monitors = await self.registry.find_all_active()
        except Exception as e:
            logger.error(f"[Scheduler] Failed to load monitors: {e}")
            raise SchedulerError(
                f"Failed to load monitors: {e}",
                operation="start",
                cause=e
            ) from e

        self._running = True
        self._started_at = TimeHelper.get_utc_now()

        active_ids = {monitor.id for monitor in monitors}
        for monitor_id in [i for i in self._last_dispatch if i not in active_ids]:
            del self._last_dispatch[monitor_id]

        for monitor in monitors:
            self.schedule_monitor(monitor)

        if self.settings.reconcile_interval > 0:
            self._reconcile_handle = self.timers.schedule(
                self.settings.reconcile_interval,
                self._reconcile_tick,
                name="reconcile",
                initial_delay=self.settings.reconcile_interval,
            )

        logger.info(f"✓ Scheduler started with {len(self._entries)} monitor(s)")
        return len(self._entries)

    async def _stop(self) -> int:
        if not self._running:
            raise SchedulerNotRunningError()

        logger.info("[Scheduler] Stopping…")
        self._running = False

        handles = [entry.handle for entry in self._entries.values()]
        cancelled = len(handles)
        if self._reconcile_handle is not None:
            handles.append(self._reconcile_handle)
            self._reconcile_handle = None

        for handle in handles:
            self.timers.cancel(handle)

        self._entries.clear()

        await self.timers.wait_closed(handles)

        logger.info(f"✓ Scheduler stopped ({cancelled} timer(s) cancelled)")
        return cancelled

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for checks still in flight; returns how many did not finish."""
        return await self.timers.drain(timeout)

    # ------------------------------------------------------------------
    # SCHEDULING
    # ------------------------------------------------------------------

    def schedule_monitor(self, monitor) -> bool:
        """
        Start (or replace) the timer for one monitor.

        An existing timer is cancelled first, so a monitor never has two
        timers. A monitor checked before (by any earlier timer or a manual
        check) first fires one interval after that check.

        Returns
        -------
        bool
            False when the scheduler is stopped or the monitor is not
            active; an inactive monitor loses any timer it had.
        """
        if not self._running:
            logger.debug(f"[Scheduler] Not running, ignoring monitor {monitor.id}")
            return False

        if not _is_schedulable(monitor):
            self.unschedule_monitor(monitor.id)
            return False

        interval = self.settings.validate_interval(int(monitor.interval_seconds))

        existing = self._entries.pop(monitor.id, None)
        if existing is not None:
            self.timers.cancel(existing.handle)

        last = self._last_dispatch.get(monitor.id)
        if last is not None:
            initial_delay = max(0.0, interval - (self.timers.clock() - last))
        elif existing is not None or not self.settings.run_immediately:
            initial_delay = float(interval)
        else:
            initial_delay = 0.0

        handle = self._arm(monitor.id, interval, initial_delay)

        self._entries[monitor.id] = ScheduleEntry(
            monitor_id=monitor.id,
            interval=interval,
            handle=handle,
            last_dispatch_at=existing.last_dispatch_at if existing else None,
        )

        action = "Rescheduled" if existing else "Scheduled"
        logger.info(
            f"[Scheduler] {action} monitor {monitor.id} ({monitor.name}) "
            f"every {interval}s"
        )
        return True

    def unschedule_monitor(self, monitor_id: int) -> bool:
        """Cancel the timer for a monitor. Returns False when it had none."""
        entry = self._entries.pop(monitor_id, None)
        if entry is None:
            return False

        self.timers.cancel(entry.handle)

        logger.info(f"[Scheduler] Unscheduled monitor {monitor_id}")
        return True

    async def reconcile(self) -> Dict[str, int]:
        """
        Bring the timer set in line with the registry: schedule active
        monitors that have no timer, reschedule those whose interval
        changed, and drop timers for monitors no longer active.
        """
        if not self._running:
            raise SchedulerNotRunningError(operation="reconcile")

        monitors = await self.registry.find_all_active()
        wanted = {monitor.id: monitor for monitor in monitors}

        unscheduled = 0
        for monitor_id in list(self._entries):
            if monitor_id not in wanted:
                self.unschedule_monitor(monitor_id)
                unscheduled += 1

        scheduled = 0
        for monitor in monitors:
            entry = self._entries.get(monitor.id)
            interval = self.settings.validate_interval(int(monitor.interval_seconds))
            if entry is None or entry.interval != interval:
                if self.schedule_monitor(monitor):
                    scheduled += 1

        if scheduled or unscheduled:
            logger.info(
                f"[Scheduler] Reconciled: {scheduled} scheduled, {unscheduled} unscheduled"
            )

        return {"scheduled": scheduled, "unscheduled": unscheduled}

    async def _reconcile_tick(self) -> None:
        if self._running:
            await self.reconcile()

    # ------------------------------------------------------------------
    # CHECK EXECUTION
    # ------------------------------------------------------------------

    async def run_monitor_check(self, monitor_id: int) -> Optional[CheckResult]:
        """
        Run one check for a monitor and hand the result to the sink.

        The manual entry point. Never raises. When the monitor has a
        timer, its next fire moves to one interval after this check.

        Returns
        -------
        Optional[CheckResult]
            None when the monitor was skipped (missing, inactive, or the
            registry could not be read).
        """
        async with self._monitor_lock(monitor_id):
            result = await self._check(monitor_id, manual=True)

            entry = self._entries.get(monitor_id)
            # a timer fire already queued on the lock skips itself instead
            if entry is not None and entry.manual_dispatch and entry.handle.current_fire is None:
                self.timers.cancel(entry.handle)
                entry.handle = self._arm(monitor_id, entry.interval, float(entry.interval))

            return result

    async def _timer_check(self, monitor_id: int) -> Optional[CheckResult]:
        async with self._monitor_lock(monitor_id):
            entry = self._entries.get(monitor_id)
            last = self._last_dispatch.get(monitor_id)
            if (
                entry is not None
                and entry.manual_dispatch
                and last is not None
                and self.timers.clock() - last < entry.interval
            ):
                logger.debug(f"[Scheduler] Monitor {monitor_id} was just checked manually, skipping fire")
                return None
            return await self._check(monitor_id)

    def _arm(self, monitor_id: int, interval: int, initial_delay: float) -> PeriodicTask:
        return self.timers.schedule(
            interval,
            partial(self._timer_check, monitor_id),
            name=f"monitor:{monitor_id}",
            initial_delay=initial_delay,
        )

    @asynccontextmanager
    async def _monitor_lock(self, monitor_id: int) -> AsyncIterator[None]:
        """Per-monitor lock that exists only while someone holds or awaits it."""
        lock = self._locks.setdefault(monitor_id, asyncio.Lock())
        self._lock_refs[monitor_id] = self._lock_refs.get(monitor_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_refs[monitor_id] -= 1
            if self._lock_refs[monitor_id] == 0:
                del self._lock_refs[monitor_id]
                del self._locks[monitor_id]

    async def _check(self, monitor_id: int, manual: bool = False) -> Optional[CheckResult]:
        try:
            monitor = await self.registry.find_by_id(monitor_id)
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"[Scheduler] Could not load monitor {monitor_id}: {e}")
            return None

        if monitor is None or not _is_schedulable(monitor):
            self.stats.skipped += 1
            logger.debug(f"[Scheduler] Monitor {monitor_id} is gone or inactive, skipping")
            self.unschedule_monitor(monitor_id)
            self._last_dispatch.pop(monitor_id, None)
            return None

        self._last_dispatch[monitor_id] = self.timers.clock()

        entry = self._entries.get(monitor_id)
        if entry is not None:
            self._adopt_interval(entry, monitor)
            entry.last_dispatch_at = TimeHelper.get_utc_now()
            entry.manual_dispatch = manual

        self.stats.total_checks += 1
        self.stats.last_check = TimeHelper.get_utc_now()

        started = time.perf_counter()
        try:
            result = await self.probes.check(monitor)
        except Exception as e:
            logger.opt(exception=True).error(
                f"[Scheduler] Probe failed for monitor {monitor_id}: {e}"
            )
            result = CheckResult.error(
                monitor,
                f"Probe failed: {getattr(e, 'message', None) or e}",
                TimeHelper.elapsed_ms(started)
            )

        if result.status == CheckStatus.ERROR:
            self.stats.errors += 1

        try:
            stored = await self.sink.record(result)
        except Exception:
            logger.exception(f"[Scheduler] Result sink failed for monitor {monitor_id}")
            stored = False

        if not stored:
            self.stats.persist_failures += 1

        logger.info(
            f"[Scheduler] {monitor.name} ({monitor_id}) -> {result.status.value} "
            f"{result.response_time} ms"
            + (f" [{result.error_message}]" if result.error_message else "")
        )
        return result

    def _adopt_interval(self, entry: ScheduleEntry, monitor) -> None:
        """Pick up an interval changed in the registry without a reschedule."""
        interval = self.settings.validate_interval(int(monitor.interval_seconds))
        if interval != entry.interval:
            logger.info(
                f"[Scheduler] Monitor {entry.monitor_id} interval "
                f"{entry.interval}s -> {interval}s"
            )
            entry.interval = interval
            entry.handle.interval = interval

    async def run_all_checks(
        self,
        concurrency: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> List[CheckResult]:
        """
        Check every active monitor once, in batches.

        Works whether or not the scheduler is running. Skipped monitors
        are left out of the returned list.
        """
        monitors = await self.registry.find_all_active()
        ids = [monitor.id for monitor in monitors]

        batch_size = concurrency or self.settings.batch_concurrency
        batch_delay = self.settings.batch_delay if delay is None else delay

        async def run_batch(batch: List[int]) -> List[Optional[CheckResult]]:
            return await asyncio.gather(*(self.run_monitor_check(i) for i in batch))

        logger.info(f"[Scheduler] Checking {len(ids)} monitor(s) in batches of {batch_size}")
        results = await BatchProcessor.process_in_batches(ids, batch_size, run_batch, batch_delay)
        return [r for r in results if r is not None]

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        uptime = None
        if self._running and self._started_at is not None:
            uptime = (TimeHelper.get_utc_now() - self._started_at).total_seconds()

        return {
            "running": self._running,
            "active_timers": len(self._entries),
            "in_flight": self.timers.in_flight,
            "stats": self.stats.to_dict(),
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime,
        }

    async def get_scheduled_jobs(self) -> Dict[str, Any]:
        """Active monitors in the registry grouped by interval and probe type."""
        monitors = await self.registry.find_all_active()

        by_interval: Dict[str, int] = {}
        by_type: Dict[str, int] = {}

        for monitor in monitors:
            interval_key = f"{monitor.interval_seconds}s"
            by_interval[interval_key] = by_interval.get(interval_key, 0) + 1

            try:
                type_key = ProbeType.parse(monitor.probe_type).value
            except ValueError:
                type_key = str(monitor.probe_type)
            by_type[type_key] = by_type.get(type_key, 0) + 1

        return {
            "total_monitors": len(monitors),
            "by_interval": by_interval,
            "by_type": by_type,
        }

    def get_timers(self) -> List[Dict[str, Any]]:
        return [self._entries[i].to_dict() for i in sorted(self._entries)]
