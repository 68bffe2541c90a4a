"""
============================================================================
UPTIME MONITOR - LOGGING UTILITY
============================================================================
loguru setup: a console sink plus optional rotating file sinks.

Modules obtain a logger with ``get_logger(__name__)``; the module name is
bound into ``extra`` and rendered by every sink. ``setup_logging`` is
called once by the application entry point, never at import time.
============================================================================
"""

import asyncio
import sys
import time
from functools import wraps
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
    "{extra[name]}:{function}:{line} - {message}"
)


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure loguru sinks from logging settings.

    Parameters
    ----------
    settings : LoggingSettings, optional
        Logging section of the application settings. Defaults are read
        from the environment when omitted.
    """
    settings = settings or LoggingSettings()
    log_level = settings.level.value

    # Remove default loguru handler
    logger.remove()
    logger.configure(extra={"name": "uptime_monitor"})

    if settings.console_enabled:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=settings.console_colored,
            backtrace=True,
            diagnose=False,
        )

    if settings.file_enabled:
        settings.directory.mkdir(parents=True, exist_ok=True)

        logger.add(
            settings.directory / "uptime_monitor.log",
            format=FILE_FORMAT,
            level=log_level,
            rotation=settings.file_rotation,
            retention=settings.file_retention,
            compression=settings.file_compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

        if settings.error_file_enabled:
            logger.add(
                settings.directory / "errors.log",
                format=FILE_FORMAT,
                level="ERROR",
                rotation=settings.file_rotation,
                retention=settings.file_retention,
                compression=settings.file_compression,
                enqueue=True,
                backtrace=True,
                diagnose=False,
            )

    logger.info("Logging system initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"File logging: {settings.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log how long a coroutine or function took.

    Failures are logged with their duration and re-raised.
    """
    log = get_logger(func.__module__)

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            execution_time = time.perf_counter() - start_time
            log.error(
                f"{func.__qualname__} failed after {execution_time:.4f} seconds: {e}"
            )
            raise
        execution_time = time.perf_counter() - start_time
        log.debug(f"{func.__qualname__} executed in {execution_time:.4f} seconds")
        return result

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            execution_time = time.perf_counter() - start_time
            log.error(
                f"{func.__qualname__} failed after {execution_time:.4f} seconds: {e}"
            )
            raise
        execution_time = time.perf_counter() - start_time
        log.debug(f"{func.__qualname__} executed in {execution_time:.4f} seconds")
        return result

    if asyncio.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
