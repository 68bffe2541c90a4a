"""
============================================================================
UPTIME MONITOR - REPOSITORIES
============================================================================
Data access for monitors (the registry the scheduler reads) and for
check history (written only through the result sink).

Reads never swallow storage errors: a failed lookup raises
``DatabaseQueryError`` so callers can tell "gone" from "unreadable".
============================================================================
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select

from config.constants import CheckStatus, Defaults, Limits, ProbeType
from config.settings import MonitoringSettings
from database.manager import DatabaseManager
from database.models import CheckResultRecord, Monitor
from database.schemas import MonitorCreate, MonitorUpdate
from exceptions.database import DuplicateRecordError, RecordNotFoundError
from monitoring.results import CheckResult
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.validators import MonitorValidator


class BaseRepository:
    """
    Base repository class for database operations.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)


# ============================================================================
# MONITOR REPOSITORY
# ============================================================================

class MonitorRepository(BaseRepository):
    """
    Source of truth for monitor definitions.

    Writes are validated here (target format per probe type, interval
    bounds, unique names), so invalid definitions never reach the
    scheduler. Deletion is soft: the row stays for history but is
    invisible to every finder.
    """

    def __init__(self, db_manager: DatabaseManager, settings: MonitoringSettings):
        super().__init__(db_manager)
        self.settings = settings
        self.validator = MonitorValidator(settings)

    async def find_all_active(self) -> List[Monitor]:
        """Monitors that should currently be scheduled."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Monitor)
                .where(Monitor.is_active.is_(True), Monitor.is_deleted.is_(False))
                .order_by(Monitor.id)
            )
            return list(result.scalars().all())

    async def find_by_id(self, monitor_id: int) -> Optional[Monitor]:
        """Return the monitor, or None when it does not exist or was deleted."""
        async with self.db.session() as session:
            monitor = await session.get(Monitor, monitor_id)
            if monitor is None or monitor.is_deleted:
                return None
            return monitor

    async def find_all(self, include_inactive: bool = True) -> List[Monitor]:
        async with self.db.session() as session:
            query = select(Monitor).where(Monitor.is_deleted.is_(False)).order_by(Monitor.id)
            if not include_inactive:
                query = query.where(Monitor.is_active.is_(True))
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_by_name(self, name: str) -> Optional[Monitor]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Monitor).where(Monitor.name == name, Monitor.is_deleted.is_(False))
            )
            return result.scalars().first()

    async def count(self, active_only: bool = False) -> int:
        async with self.db.session() as session:
            query = select(func.count(Monitor.id)).where(Monitor.is_deleted.is_(False))
            if active_only:
                query = query.where(Monitor.is_active.is_(True))
            return int(await session.scalar(query) or 0)

    async def create(self, data: MonitorCreate) -> Monitor:
        """
        Validate and store a new monitor.

        Raises
        ------
        InvalidTargetError, InvalidIntervalError
            When the definition is invalid.
        DuplicateRecordError
            When a live monitor already uses the name.
        """
        target = self.validator.validate_target(data.target, data.probe_type)
        interval = self.validator.validate_interval(
            data.interval_seconds if data.interval_seconds is not None else self.settings.default_interval
        )

        async with self.db.session() as session:
            await self._ensure_unique_name(session, data.name)

            monitor = Monitor(
                name=data.name,
                target=target,
                probe_type=data.probe_type,
                interval_seconds=interval,
                timeout_seconds=data.timeout_seconds,
                is_active=data.is_active,
                is_deleted=False,
            )
            session.add(monitor)
            await session.flush()
            await session.refresh(monitor)

        self.logger.info(f"Created monitor {monitor.id} ({monitor.name}, {monitor.probe_type.value})")
        return monitor

    async def update(self, monitor_id: int, data: MonitorUpdate) -> Monitor:
        """
        Apply a partial update.

        Target and type are validated together, so changing only the type
        re-checks the existing target against it.

        Raises
        ------
        RecordNotFoundError
            When the monitor does not exist or was deleted.
        """
        changes = data.model_dump(exclude_unset=True)

        async with self.db.session() as session:
            monitor = await session.get(Monitor, monitor_id)
            if monitor is None or monitor.is_deleted:
                raise RecordNotFoundError(
                    f"Monitor {monitor_id} not found", entity_type="Monitor", entity_id=monitor_id
                )

            if changes.get("name") is not None and changes["name"] != monitor.name:
                await self._ensure_unique_name(session, changes["name"], exclude_id=monitor_id)

            if "target" in changes or "probe_type" in changes:
                probe_type = changes.get("probe_type") or monitor.probe_type
                target = changes.get("target") or monitor.target
                changes["target"] = self.validator.validate_target(target, probe_type)
                changes["probe_type"] = ProbeType.parse(probe_type)

            if changes.get("interval_seconds") is not None:
                changes["interval_seconds"] = self.validator.validate_interval(changes["interval_seconds"])

            for key, value in changes.items():
                # only timeout may be reset to None
                if value is None and key != "timeout_seconds":
                    continue
                setattr(monitor, key, value)

            await session.flush()
            await session.refresh(monitor)

        self.logger.info(f"Updated monitor {monitor_id}: {sorted(changes)}")
        return monitor

    async def delete(self, monitor_id: int) -> bool:
        """
        Soft-delete a monitor.

        Returns:
            True if a live monitor was deleted, False if none existed
        """
        async with self.db.session() as session:
            monitor = await session.get(Monitor, monitor_id)
            if monitor is None or monitor.is_deleted:
                return False
            monitor.soft_delete()
            monitor.is_active = False

        self.logger.info(f"Deleted monitor {monitor_id}")
        return True

    async def _ensure_unique_name(self, session, name: str, exclude_id: Optional[int] = None) -> None:
        query = select(Monitor.id).where(Monitor.name == name, Monitor.is_deleted.is_(False))
        if exclude_id is not None:
            query = query.where(Monitor.id != exclude_id)
        if await session.scalar(query) is not None:
            raise DuplicateRecordError(
                f"Monitor with name '{name}' already exists", field="name", value=name
            )


# ============================================================================
# CHECK RESULT REPOSITORY
# ============================================================================

class CheckResultRepository(BaseRepository):
    """
    Append-only check history.
    """

    async def add(self, result: CheckResult) -> CheckResultRecord:
        record = CheckResultRecord(
            monitor_id=result.monitor_id,
            probe_type=result.probe_type,
            status=result.status,
            status_code=result.status_code,
            response_time=result.response_time,
            error_message=result.error_message,
            checked_at=result.checked_at,
        )

        async with self.db.session() as session:
            session.add(record)
            await session.flush()

        return record

    async def find_by_monitor(self, monitor_id: int, limit: int = Defaults.HISTORY_LIMIT) -> List[CheckResultRecord]:
        """Most recent results first."""
        limit = max(1, min(limit, Limits.MAX_HISTORY_LIMIT))

        async with self.db.session() as session:
            result = await session.execute(
                select(CheckResultRecord)
                .where(CheckResultRecord.monitor_id == monitor_id)
                .order_by(CheckResultRecord.checked_at.desc(), CheckResultRecord.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count(self, monitor_id: Optional[int] = None) -> int:
        async with self.db.session() as session:
            query = select(func.count(CheckResultRecord.id))
            if monitor_id is not None:
                query = query.where(CheckResultRecord.monitor_id == monitor_id)
            return int(await session.scalar(query) or 0)

    async def delete_older_than(self, cutoff: datetime) -> int:
        """
        Delete results checked before ``cutoff``.

        Returns:
            Number of deleted rows
        """
        async with self.db.session() as session:
            result = await session.execute(
                delete(CheckResultRecord).where(CheckResultRecord.checked_at < cutoff)
            )
            return int(result.rowcount or 0)

    async def find_recent(self, limit: int = Defaults.RECENT_LIMIT) -> List[CheckResultRecord]:
        """Most recent results across every monitor, newest first."""
        limit = max(1, min(limit, Limits.MAX_HISTORY_LIMIT))

        async with self.db.session() as session:
            result = await session.execute(
                select(CheckResultRecord)
                .order_by(CheckResultRecord.checked_at.desc(), CheckResultRecord.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    @staticmethod
    async def _window_stats(session, since: datetime, monitor_id: Optional[int] = None) -> Dict[str, Any]:
        """Status counts and response-time figures (UP checks only) since ``since``."""
        window = [CheckResultRecord.checked_at >= since]
        if monitor_id is not None:
            window.append(CheckResultRecord.monitor_id == monitor_id)

        rows = await session.execute(
            select(CheckResultRecord.status, func.count(CheckResultRecord.id))
            .where(*window)
            .group_by(CheckResultRecord.status)
        )
        counts = {CheckStatus(status).value: int(n) for status, n in rows.all()}

        timing = (await session.execute(
            select(
                func.avg(CheckResultRecord.response_time),
                func.min(CheckResultRecord.response_time),
                func.max(CheckResultRecord.response_time),
            ).where(*window, CheckResultRecord.status == CheckStatus.UP)
        )).one()

        total = sum(counts.values())
        up = counts.get(CheckStatus.UP.value, 0)

        def _ms(value):
            return round(float(value), 2) if value is not None else None

        return {
            "total_checks": total,
            "up": up,
            "down": counts.get(CheckStatus.DOWN.value, 0),
            "error": counts.get(CheckStatus.ERROR.value, 0),
            "uptime_percentage": round(up / total * 100, 2) if total else None,
            "avg_response_time": _ms(timing[0]),
            "min_response_time": _ms(timing[1]),
            "max_response_time": _ms(timing[2]),
        }

    async def summarize(self, monitor_id: int, hours: int = Defaults.SUMMARY_HOURS) -> Dict[str, Any]:
        """
        Status counts, uptime percentage and response times for one
        monitor over a trailing window.
        """
        since = TimeHelper.get_utc_now() - timedelta(hours=hours)

        async with self.db.session() as session:
            stats = await self._window_stats(session, since, monitor_id)

            latest = (await session.execute(
                select(CheckResultRecord)
                .where(CheckResultRecord.monitor_id == monitor_id)
                .order_by(CheckResultRecord.checked_at.desc(), CheckResultRecord.id.desc())
                .limit(1)
            )).scalars().first()

        return {
            "monitor_id": monitor_id,
            "hours": hours,
            **stats,
            "last_status": CheckStatus(latest.status).value if latest else None,
            "last_checked_at": latest.to_dict()["checked_at"] if latest else None,
        }

    async def system_summary(self, hours: int = Defaults.SUMMARY_HOURS) -> Dict[str, Any]:
        """The same figures as ``summarize``, across every monitor."""
        since = TimeHelper.get_utc_now() - timedelta(hours=hours)

        async with self.db.session() as session:
            stats = await self._window_stats(session, since)
            monitors = await session.scalar(
                select(func.count(func.distinct(CheckResultRecord.monitor_id)))
                .where(CheckResultRecord.checked_at >= since)
            )

        return {
            "hours": hours,
            "monitors_checked": int(monitors or 0),
            **stats,
        }
