"""
============================================================================
UPTIME MONITOR - HELPERS UTILITY
============================================================================
Time helpers and the batch runner used by "check all" operations.
============================================================================
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from utils.logger import get_logger


logger = get_logger(__name__)


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current timezone-aware UTC datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
        """
        Attach UTC to naive datetimes.

        SQLite hands stored timestamps back without tzinfo; everything
        this application writes is UTC.
        """
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def cutoff_days_ago(days: int) -> datetime:
        return TimeHelper.get_utc_now() - timedelta(days=days)

    @staticmethod
    def elapsed_ms(started: float) -> float:
        """Milliseconds since a ``time.perf_counter()`` reading."""
        return round((time.perf_counter() - started) * 1000, 2)

    @staticmethod
    def seconds_to_human_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        seconds = int(seconds)
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)


# ============================================================================
# BATCH PROCESSING
# ============================================================================

class BatchProcessor:
    """
    Process items in fixed-size batches.
    """

    @staticmethod
    async def process_in_batches(
        items: Sequence[Any],
        batch_size: int,
        process_func: Callable[[List[Any]], Awaitable[List[Any]]],
        delay_between_batches: float = 0.0
    ) -> List[Any]:
        """
        Process items in batches.

        Args:
            items: Items to process
            batch_size: Number of items per batch
            process_func: Async function to process one batch
            delay_between_batches: Pause between batches in seconds

        Returns:
            Results of every batch, concatenated in input order
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        items = list(items)
        results: List[Any] = []

        for i in range(0, len(items), batch_size):
            batch = items[i:i + batch_size]
            logger.debug(f"Processing batch {i // batch_size + 1} ({len(batch)} items)")

            batch_results = await process_func(batch)
            results.extend(batch_results)

            if delay_between_batches > 0 and i + batch_size < len(items):
                await asyncio.sleep(delay_between_batches)

        return results
