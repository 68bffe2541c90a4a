"""
Constants Module for Uptime Monitor

Enumerations, limits, defaults and error detail strings shared by the
probes, the scheduler and the storage layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, Optional, Tuple


class ProbeType(str, Enum):
    """
    Probe Type Enumeration

    Selects the probe executor used for a monitor.
    """

    HTTP = "http"
    PING = "ping"
    TCP = "tcp"

    @classmethod
    def parse(cls, value: "ProbeType | str") -> "ProbeType":
        """Accept an enum member or its (case-insensitive) value."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        # "https" monitors are plain HTTP probes
        if normalized == "https":
            return cls.HTTP
        return cls(normalized)

    @classmethod
    def status_code_range(cls, probe_type: "ProbeType") -> Optional[Tuple[int, int]]:
        """Inclusive range a status code must fall in, or None when no code is allowed."""
        ranges = {
            cls.HTTP: (Limits.MIN_HTTP_STATUS, Limits.MAX_HTTP_STATUS),
            cls.TCP: (Limits.MIN_PORT, Limits.MAX_PORT),
            cls.PING: None,
        }
        return ranges[probe_type]


class CheckStatus(str, Enum):
    """
    Check Result Status Enumeration

    UP means reachable, DOWN means the probe completed but the target is
    unreachable or unhealthy, ERROR means the probe could not be evaluated.
    """

    UP = "up"
    DOWN = "down"
    ERROR = "error"

    @classmethod
    def is_successful(cls, status: "CheckStatus") -> bool:
        """Check if the probe found the target reachable."""
        return status == cls.UP


class ErrorDetails:
    """Human-readable error details stored on check results."""

    DNS_FAILED: Final[str] = "DNS resolution failed"
    CONNECTION_REFUSED: Final[str] = "Connection refused"
    REQUEST_TIMEOUT: Final[str] = "Request timeout"
    CONNECTION_TIMEOUT: Final[str] = "Connection timeout"
    HOST_UNREACHABLE: Final[str] = "Host not reachable"
    PING_UNAVAILABLE: Final[str] = "ping command not available"
    UNSUPPORTED_PROBE: Final[str] = "Unsupported probe type"
    HTTP_STATUS: Final[str] = "HTTP {code}: {reason}"


class Limits:
    """Hard limits on monitor definitions and results."""

    MAX_NAME_LENGTH: Final[int] = 200
    MAX_TARGET_LENGTH: Final[int] = 2048

    MIN_PORT: Final[int] = 1
    MAX_PORT: Final[int] = 65535

    MIN_HTTP_STATUS: Final[int] = 100
    MAX_HTTP_STATUS: Final[int] = 599

    MIN_TIMEOUT: Final[int] = 1
    MAX_TIMEOUT: Final[int] = 300

    MAX_HISTORY_LIMIT: Final[int] = 1000


class Defaults:
    """Default values used when settings or monitors leave them unset."""

    INTERVAL: Final[int] = 60
    HTTP_TIMEOUT: Final[float] = 30.0
    PING_TIMEOUT: Final[float] = 10.0
    TCP_TIMEOUT: Final[float] = 10.0

    BATCH_CONCURRENCY: Final[int] = 10
    BATCH_DELAY: Final[float] = 1.0

    HISTORY_LIMIT: Final[int] = 50
    RECENT_LIMIT: Final[int] = 500
    SUMMARY_HOURS: Final[int] = 24
    RETENTION_DAYS: Final[int] = 30

    USER_AGENT: Final[str] = "UptimeMonitor/1.0 (Compatible; Monitoring Service)"


class ErrorCodes:
    """Application error codes."""

    # General errors (1xxx)
    UNKNOWN_ERROR: Final[int] = 1000
    VALIDATION_ERROR: Final[int] = 1001
    CONFIGURATION_ERROR: Final[int] = 1002

    # Database errors (2xxx)
    DB_CONNECTION_ERROR: Final[int] = 2000
    DB_QUERY_ERROR: Final[int] = 2001
    DB_NOT_FOUND: Final[int] = 2002
    DB_DUPLICATE: Final[int] = 2003

    # Validation errors (3xxx)
    INVALID_TARGET: Final[int] = 3000
    INVALID_INTERVAL: Final[int] = 3001
    INVALID_CHECK_RESULT: Final[int] = 3002

    # Monitoring errors (5xxx)
    SCHEDULER_ERROR: Final[int] = 5000
    SCHEDULER_ALREADY_RUNNING: Final[int] = 5001
    SCHEDULER_NOT_RUNNING: Final[int] = 5002
    UNSUPPORTED_PROBE: Final[int] = 5003


class Patterns:
    """Regular expression patterns."""

    # round-trip time as printed by iputils/busybox/BSD ping
    PING_RTT: Final[str] = r"time[=<]\s*([\d.]+)\s*ms"

    URL_SCHEME: Final[str] = r"^[a-zA-Z][a-zA-Z0-9+.-]*://"
