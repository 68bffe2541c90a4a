"""
Monitoring Exception Classes for Uptime Monitor

Scheduler lifecycle errors are raised to the caller: they indicate
API misuse (starting twice, stopping while stopped), not a transient
condition. Probe failures never surface as exceptions; they become
check results.
"""

from __future__ import annotations

from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import UptimeMonitorException


class MonitoringException(UptimeMonitorException):
    """Parent class for scheduler and probe exceptions."""

    default_error_code = ErrorCodes.SCHEDULER_ERROR


class SchedulerError(MonitoringException):
    """
    Scheduler Error

    Raised when the scheduler cannot perform a lifecycle operation,
    e.g. the registry cannot be read during start.
    """

    default_error_code = ErrorCodes.SCHEDULER_ERROR

    def __init__(
        self,
        message: str = "Scheduler error",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation


class SchedulerAlreadyRunningError(SchedulerError):
    """Raised by ``start()`` when the scheduler is already running."""

    default_error_code = ErrorCodes.SCHEDULER_ALREADY_RUNNING

    def __init__(
        self,
        message: str = "Scheduler is already running",
        operation: str = "start",
        **kwargs: Any
    ) -> None:
        super().__init__(message, operation=operation, **kwargs)


class SchedulerNotRunningError(SchedulerError):
    """Raised by ``stop()`` when the scheduler is not running."""

    default_error_code = ErrorCodes.SCHEDULER_NOT_RUNNING

    def __init__(
        self,
        message: str = "Scheduler is not running",
        operation: str = "stop",
        **kwargs: Any
    ) -> None:
        super().__init__(message, operation=operation, **kwargs)


class UnsupportedProbeTypeError(MonitoringException):
    """Raised when no probe executor is registered for a probe type."""

    default_error_code = ErrorCodes.UNSUPPORTED_PROBE

    def __init__(
        self,
        message: str = "Unsupported probe type",
        probe_type: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if probe_type:
            self.details["probe_type"] = probe_type
