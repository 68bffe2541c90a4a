"""
============================================================================
UPTIME MONITOR - DATABASE MANAGER
============================================================================
Async engine, session factory and transactional session scope.

SQLite runs through aiosqlite (NullPool for files, StaticPool for
``:memory:`` so every session sees the same database); PostgreSQL runs
through asyncpg with a pooled engine.
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool, StaticPool

from config.settings import DatabaseSettings
from database.models import Base
from exceptions.database import DatabaseConnectionError, DatabaseQueryError
from utils.logger import get_logger


logger = get_logger(__name__)


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and hands out transactional sessions.

    Parameters
    ----------
    settings : DatabaseSettings
        Database section of the application settings.
    """

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = settings.url

        logger.info(f"DatabaseManager configured for {self._mask_password(self.database_url)}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """Mask the password in a database URL for logging."""
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        """Engine options for the configured backend."""
        kwargs: Dict[str, Any] = {"echo": self.settings.echo}

        if self.settings.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url.endswith(":memory:"):
                kwargs["poolclass"] = StaticPool
            else:
                kwargs["poolclass"] = NullPool
        else:
            kwargs.update(
                pool_size=self.settings.pool_size,
                max_overflow=self.settings.max_overflow,
                pool_timeout=self.settings.pool_timeout,
                pool_recycle=self.settings.pool_recycle,
                pool_pre_ping=self.settings.pool_pre_ping,
            )

        return kwargs

    async def initialize(self) -> None:
        """
        Create the engine and session factory, then create missing tables.

        Raises
        ------
        DatabaseConnectionError
            When the database cannot be reached or the schema created.
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self.engine = create_async_engine(self.database_url, **self._get_engine_kwargs())

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except (SQLAlchemyError, OSError) as e:
                logger.opt(exception=True).error(f"Failed to initialize database: {e}")
                if self.engine is not None:
                    await self.engine.dispose()
                    self.engine = None
                raise DatabaseConnectionError(
                    f"Failed to initialize database: {e}",
                    url=self.database_url,
                    cause=e
                ) from e

    async def create_tables(self) -> None:
        """Create all database tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Commits on success and rolls back on any error. SQLAlchemy errors
        are re-raised as ``DatabaseQueryError``.

        Example:
            async with db_manager.session() as session:
                monitor = await session.get(Monitor, monitor_id)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Session error: {e}")
            raise DatabaseQueryError(f"Database operation failed: {e}", cause=e) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (DatabaseQueryError, DatabaseConnectionError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """Dispose of the engine and its connections."""
        async with self._lock:
            if self.engine is not None:
                await self.engine.dispose()
                logger.info("Database connections closed")

            self.engine = None
            self.session_factory = None
            self._is_initialized = False
