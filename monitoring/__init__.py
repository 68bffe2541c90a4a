"""
============================================================================
UPTIME MONITOR - MONITORING PACKAGE
============================================================================
Runtime monitoring infrastructure:
    • HTTPProbe / PingProbe / TCPProbe  — one check of one monitor
    • ResultSink                        — validated write path for results
    • TimerPool / PeriodicTask          — cancellable periodic timers
    • MonitorScheduler                  — one timer per active monitor

The aiohttp control API lives in ``monitoring.control_server`` and is
imported from there directly.
============================================================================
"""

from monitoring.results import CheckResult
from monitoring.probes import (
    BaseProbe,
    HTTPProbe,
    PingProbe,
    TCPProbe,
    ProbeSet,
    create_probes,
    network_error_detail,
)
from monitoring.sink import ResultSink
from monitoring.timers import PeriodicTask, TimerPool
from monitoring.scheduler import MonitorScheduler, ScheduleEntry, SchedulerStats

__all__ = [
    "CheckResult",

    # Probes
    "BaseProbe",
    "HTTPProbe",
    "PingProbe",
    "TCPProbe",
    "ProbeSet",
    "create_probes",
    "network_error_detail",

    # Results
    "ResultSink",

    # Scheduling
    "PeriodicTask",
    "TimerPool",
    "MonitorScheduler",
    "ScheduleEntry",
    "SchedulerStats",
]
