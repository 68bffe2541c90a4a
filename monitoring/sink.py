"""
Result sink: the single write path for check history.
"""

from typing import List

from config.constants import CheckStatus, ProbeType
from exceptions.base import UptimeMonitorException
from exceptions.validation import InvalidCheckResultError, ValidationException
from monitoring.results import CheckResult
from utils.helpers import TimeHelper
from utils.logger import get_logger, log_execution_time


logger = get_logger(__name__)


class ResultSink:
    """
    Validates check results and appends them to storage.

    ``record`` never raises: the scheduler calls it from timer callbacks
    and a storage outage must not stop the timers. ``purge_older_than``
    is a maintenance operation and lets storage errors propagate.

    Parameters
    ----------
    repository : CheckResultRepository
        Storage for check results.
    """

    def __init__(self, repository):
        self.repository = repository

    @staticmethod
    def validate(result: CheckResult) -> None:
        """
        Check the shape of a result before it is written.

        Raises
        ------
        InvalidCheckResultError
            Listing every problem found.
        """
        errors: List[str] = []

        if result.monitor_id is None:
            errors.append("monitor_id is required")

        if not isinstance(result.status, CheckStatus):
            errors.append(f"unknown status {result.status!r}")

        if not isinstance(result.probe_type, ProbeType):
            errors.append(f"unknown probe type {result.probe_type!r}")

        if result.response_time is not None and result.response_time < 0:
            errors.append("response_time must be non-negative")

        if result.status_code is not None and isinstance(result.probe_type, ProbeType):
            allowed = ProbeType.status_code_range(result.probe_type)
            if allowed is None:
                errors.append(f"{result.probe_type.value} results carry no status code")
            elif not allowed[0] <= result.status_code <= allowed[1]:
                errors.append(
                    f"status_code {result.status_code} outside {allowed[0]}-{allowed[1]} "
                    f"for {result.probe_type.value}"
                )

        if result.checked_at is None:
            errors.append("checked_at is required")

        if errors:
            raise InvalidCheckResultError(
                f"Invalid check result for monitor {result.monitor_id}",
                errors=errors
            )

    async def record(self, result: CheckResult) -> bool:
        """
        Validate and persist one result.

        Returns
        -------
        bool
            True when the result was stored, False when it was rejected
            or the write failed. Either failure is logged here.
        """
        try:
            self.validate(result)
        except InvalidCheckResultError as e:
            logger.warning(f"Rejected check result: {e.log_format()}")
            return False

        try:
            await self.repository.add(result)
        except UptimeMonitorException as e:
            logger.error(f"Failed to store check result for monitor {result.monitor_id}: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected error storing check result for monitor {result.monitor_id}")
            return False

        logger.debug(
            f"Recorded {result.status.value} for monitor {result.monitor_id} "
            f"({result.response_time} ms)"
        )
        return True

    @log_execution_time
    async def purge_older_than(self, days: int) -> int:
        """
        Delete results older than ``days`` days.

        Returns
        -------
        int
            Number of deleted results.

        Raises
        ------
        ValidationException
            When ``days`` is not positive.
        """
        if not isinstance(days, int) or isinstance(days, bool) or days < 1:
            raise ValidationException("days must be a positive integer", field="days", value=days)

        cutoff = TimeHelper.cutoff_days_ago(days)
        deleted = await self.repository.delete_older_than(cutoff)

        logger.info(f"Purged {deleted} check results older than {days} days")
        return deleted
