"""
Database Package for Uptime Monitor

Provides the async engine/session manager, the ORM models for monitors
and check results, and the repositories the scheduler and the control
API read and write through.
"""

from database.manager import DatabaseManager

from database.models import (
    Base,
    Monitor,
    CheckResultRecord
)

from database.schemas import (
    MonitorCreate,
    MonitorUpdate
)

from database.repositories import (
    BaseRepository,
    MonitorRepository,
    CheckResultRepository
)

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "Monitor",
    "CheckResultRecord",

    # Schemas
    "MonitorCreate",
    "MonitorUpdate",

    # Repositories
    "BaseRepository",
    "MonitorRepository",
    "CheckResultRepository"
]
