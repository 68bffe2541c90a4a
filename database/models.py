"""
============================================================================
UPTIME MONITOR - DATABASE MODELS
============================================================================
SQLAlchemy ORM models: monitor definitions and check history.

``check_results.monitor_id`` is a plain indexed column, not a foreign key:
a result is history about a monitor, it is not owned by it, and a late
result for a deleted monitor must still insert.
============================================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, Index, Integer, String, Text
)
from sqlalchemy.orm import declarative_base

from config.constants import CheckStatus, Limits, ProbeType
from utils.helpers import TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls):
    """Store enum values ("http"), not member names ("HTTP")."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
        length=16,
    )


def _isoformat(dt):
    dt = TimeHelper.ensure_utc(dt)
    return dt.isoformat() if dt else None


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow
    )


class SoftDeleteMixin:
    """
    Mixin to add soft delete functionality.

    Records are marked as deleted instead of being removed.
    """

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    def soft_delete(self):
        """Mark record as deleted"""
        self.is_deleted = True
        self.deleted_at = _utcnow()


# ============================================================================
# MONITOR MODEL
# ============================================================================

class Monitor(Base, TimestampMixin, SoftDeleteMixin):
    """
    A configured target checked periodically by one probe type.
    """

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(Limits.MAX_NAME_LENGTH), nullable=False, index=True)
    target = Column(Text, nullable=False)
    probe_type = Column(_enum_column(ProbeType), nullable=False, index=True)

    interval_seconds = Column(Integer, nullable=False, default=60)
    # None means the probe type's configured default
    timeout_seconds = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    __table_args__ = (
        Index("idx_monitor_active", "is_active", "is_deleted"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert monitor to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "target": self.target,
            "probe_type": ProbeType(self.probe_type).value,
            "interval_seconds": self.interval_seconds,
            "timeout_seconds": self.timeout_seconds,
            "is_active": self.is_active,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return (
            f"<Monitor(id={self.id}, name={self.name!r}, "
            f"type={self.probe_type}, interval={self.interval_seconds})>"
        )


# ============================================================================
# CHECK RESULT MODEL
# ============================================================================

class CheckResultRecord(Base):
    """
    One persisted probe attempt. Rows are append-only; only the
    retention purge deletes them.
    """

    __tablename__ = "check_results"

    id = Column(Integer, primary_key=True, autoincrement=True)

    monitor_id = Column(Integer, nullable=False, index=True)
    probe_type = Column(_enum_column(ProbeType), nullable=False)

    status = Column(_enum_column(CheckStatus), nullable=False, index=True)
    status_code = Column(Integer, nullable=True)
    response_time = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)

    checked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    __table_args__ = (
        Index("idx_check_result_monitor_time", "monitor_id", "checked_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert check result to dictionary"""
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "probe_type": ProbeType(self.probe_type).value,
            "status": CheckStatus(self.status).value,
            "status_code": self.status_code,
            "response_time": self.response_time,
            "error_message": self.error_message,
            "checked_at": _isoformat(self.checked_at),
        }
