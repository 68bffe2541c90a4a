"""
Exceptions Package for Uptime Monitor

Exception hierarchy used throughout the application.
"""

from exceptions.base import UptimeMonitorException, ConfigurationError

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
    RecordNotFoundError,
    DuplicateRecordError
)

from exceptions.validation import (
    ValidationException,
    InvalidTargetError,
    InvalidIntervalError,
    InvalidCheckResultError
)

from exceptions.monitoring import (
    MonitoringException,
    SchedulerError,
    SchedulerAlreadyRunningError,
    SchedulerNotRunningError,
    UnsupportedProbeTypeError
)

__all__ = [
    # Base exceptions
    "UptimeMonitorException",
    "ConfigurationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "RecordNotFoundError",
    "DuplicateRecordError",

    # Validation exceptions
    "ValidationException",
    "InvalidTargetError",
    "InvalidIntervalError",
    "InvalidCheckResultError",

    # Monitoring exceptions
    "MonitoringException",
    "SchedulerError",
    "SchedulerAlreadyRunningError",
    "SchedulerNotRunningError",
    "UnsupportedProbeTypeError"
]
