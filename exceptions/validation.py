"""
Validation Exception Classes for Uptime Monitor

Raised when monitor definitions or check results fail validation.
Monitor validation errors are surfaced to API callers as 400 responses
and never reach the scheduler.
"""

from __future__ import annotations

from typing import Any, List, Optional

from config.constants import ErrorCodes
from exceptions.base import UptimeMonitorException


class ValidationException(UptimeMonitorException):
    """
    Base Validation Exception

    Parent class for all validation-related exceptions.
    """

    default_error_code = ErrorCodes.VALIDATION_ERROR
    default_recoverable = True

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize validation exception.

        Args:
            message: Error message
            field: The field that failed validation
            value: The invalid value (sanitized)
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = self._sanitize_value(value)

    @staticmethod
    def _sanitize_value(value: Any) -> str:
        """Truncate long values before they land in logs or responses."""
        str_value = str(value)
        if len(str_value) > 100:
            str_value = str_value[:100] + "..."
        return str_value


class InvalidTargetError(ValidationException):
    """
    Invalid Target Error

    Raised when a monitor target does not fit its probe type:
    a bad URL for HTTP, a bad host for PING, a bad host:port for TCP.
    """

    default_error_code = ErrorCodes.INVALID_TARGET

    def __init__(
        self,
        message: str = "Invalid target",
        target: Optional[str] = None,
        probe_type: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="target", value=target, **kwargs)

        if probe_type:
            self.details["probe_type"] = probe_type
        if reason:
            self.details["reason"] = reason

    def user_message(self) -> str:
        reasons = {
            "no_scheme": "HTTP targets must start with http:// or https://",
            "invalid_url": "Please provide a valid URL (e.g., https://example.com)",
            "invalid_host": "Please provide a valid hostname or IP address",
            "missing_port": "TCP targets must be in the form host:port",
            "invalid_port": "Port must be a number between 1 and 65535",
            "too_long": "Target is too long",
        }
        return reasons.get(self.details.get("reason", ""), self.message)


class InvalidIntervalError(ValidationException):
    """Raised when a check interval falls outside the configured bounds."""

    default_error_code = ErrorCodes.INVALID_INTERVAL

    def __init__(
        self,
        message: str = "Invalid interval",
        interval: Optional[int] = None,
        min_interval: Optional[int] = None,
        max_interval: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="interval_seconds", value=interval, **kwargs)

        if min_interval is not None:
            self.details["min_interval"] = min_interval
        if max_interval is not None:
            self.details["max_interval"] = max_interval

    def user_message(self) -> str:
        min_val = self.details.get("min_interval")
        max_val = self.details.get("max_interval")
        if min_val and max_val:
            return f"Interval must be between {min_val} and {max_val} seconds."
        return "Please provide a valid interval."


class InvalidCheckResultError(ValidationException):
    """
    Invalid Check Result Error

    Raised by the result sink when a check result is malformed:
    missing monitor id, negative response time, or a status code that
    is implausible for the probe type.
    """

    default_error_code = ErrorCodes.INVALID_CHECK_RESULT

    def __init__(
        self,
        message: str = "Invalid check result",
        errors: Optional[List[str]] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if errors:
            self.details["errors"] = errors
