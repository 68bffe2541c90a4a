"""
Configuration Package for Uptime Monitor

- Settings management with environment variable support
- Constants and enums used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    LoggingSettings,
    ServerSettings,
    get_settings
)

from config.constants import (
    ProbeType,
    CheckStatus,
    ErrorDetails,
    Limits,
    Defaults,
    ErrorCodes
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "LoggingSettings",
    "ServerSettings",
    "get_settings",

    # Constants
    "ProbeType",
    "CheckStatus",
    "ErrorDetails",
    "Limits",
    "Defaults",
    "ErrorCodes"
]
