"""
Settings Module for Uptime Monitor

Configuration management using Pydantic Settings.
Every group reads its own environment prefix and the optional .env file;
``Settings`` aggregates the groups and ``get_settings()`` caches one instance.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    SQLite (aiosqlite) for single-node deployments, PostgreSQL (asyncpg)
    for shared storage.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env"
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="uptime_monitor",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/uptime_monitor.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings (PostgreSQL only)
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Enable connection health check before use"
    )

    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

    @property
    def is_sqlite(self) -> bool:
        return self.type == DatabaseType.SQLITE

    @property
    def url(self) -> str:
        """Generate the async database URL for the configured backend."""
        if self.type == DatabaseType.SQLITE:
            if str(self.sqlite_path) == ":memory:":
                return "sqlite+aiosqlite:///:memory:"
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        if self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if str(v) != ":memory:" and not v.suffix:
            v = v.with_suffix(".db")
        return v


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Engine Configuration Settings

    Interval bounds, per-probe timeouts, batch sizing and the
    scheduler's lifecycle knobs.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env"
    )

    # Check intervals
    default_interval: int = Field(
        default=60,
        ge=1,
        le=604800,
        description="Default check interval in seconds"
    )
    min_interval: int = Field(
        default=5,
        ge=1,
        le=3600,
        description="Minimum allowed check interval"
    )
    max_interval: int = Field(
        default=86400,  # 24 hours
        ge=60,
        le=604800,
        description="Maximum allowed check interval"
    )

    # Probe timeouts
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="HTTP request timeout in seconds"
    )
    ping_timeout: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Ping echo timeout in seconds"
    )
    tcp_timeout: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="TCP connect timeout in seconds"
    )

    # HTTP probe behaviour
    user_agent: str = Field(
        default="UptimeMonitor/1.0 (Compatible; Monitoring Service)",
        description="User agent string for HTTP requests"
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow HTTP redirects before classifying"
    )
    verify_ssl: bool = Field(
        default=True,
        description="Verify TLS certificates"
    )
    treat_client_errors_as_up: bool = Field(
        default=True,
        description="Classify HTTP 4xx responses as up (the target answered)"
    )

    # Batch ("check all") settings
    batch_concurrency: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Checks run concurrently per batch"
    )
    batch_delay: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Pause between batches in seconds"
    )

    # Scheduler lifecycle
    run_immediately: bool = Field(
        default=True,
        description="Check a newly scheduled monitor right away"
    )
    restart_delay: float = Field(
        default=0.0,
        ge=0,
        le=30,
        description="Pause between stop and start on restart"
    )
    reconcile_interval: int = Field(
        default=0,
        ge=0,
        le=86400,
        description="Seconds between registry reconciliations (0 disables)"
    )
    shutdown_grace: float = Field(
        default=10.0,
        ge=0,
        le=300,
        description="Seconds to wait for in-flight checks on shutdown"
    )

    # History retention
    retention_days: int = Field(
        default=30,
        ge=0,
        le=3650,
        description="Days to keep check results (0 keeps everything)"
    )
    purge_interval: int = Field(
        default=86400,
        ge=60,
        le=604800,
        description="Seconds between retention purges"
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> "MonitoringSettings":
        """Validate interval relationships."""
        if self.min_interval >= self.max_interval:
            raise ValueError("min_interval must be lower than max_interval")

        if not (self.min_interval <= self.default_interval <= self.max_interval):
            raise ValueError("default_interval must be between min and max")

        return self

    def validate_interval(self, interval: int) -> int:
        """Clamp interval to the allowed range."""
        return max(self.min_interval, min(interval, self.max_interval))


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console output plus optional rotating files, all through loguru.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    console_colored: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    directory: Path = Field(
        default=Path("logs"),
        description="Directory for log files"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    file_compression: str = Field(
        default="gz",
        description="Compression format for rotated logs"
    )
    error_file_enabled: bool = Field(
        default=True,
        description="Enable separate error log file (needs file_enabled)"
    )


class ServerSettings(BaseSettingsConfig):
    """Control API server settings."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env"
    )

    enabled: bool = Field(
        default=True,
        description="Serve the control API"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Bind address"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Bind port"
    )


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    app_name: str = Field(
        default="Uptime Monitor",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )
    server: ServerSettings = Field(
        default_factory=ServerSettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False
        elif self.debug and self.logging.level == LogLevel.INFO:
            self.logging.level = LogLevel.DEBUG

        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to a JSON-friendly dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                    }
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns
    -------
    Settings
        The process-wide settings, read once from the environment.
    """
    return Settings()

