"""
============================================================================
UPTIME MONITOR - MAIN APPLICATION
============================================================================
Wires every layer together and owns the startup / shutdown order.

    Layer 1: Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine, models, repositories
        • Logging (loguru), validators, helpers

    Layer 2: Monitoring
        • Probes (HTTP / Ping / TCP)
        • ResultSink: validated write path for check history
        • MonitorScheduler: one periodic timer per active monitor

    Layer 3: Control
        • ControlServer: aiohttp JSON API
        • Retention purge: periodic history cleanup

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Create repositories, sink, probes, scheduler
4.  Start the control server (if enabled)
5.  Start the scheduler
6.  Start the retention purge timer (if enabled)
7.  Wait for SIGINT / SIGTERM

Shutdown Order (reverse)
-------------------------
    stop control server → stop scheduler → drain in-flight checks →
    stop retention timer → close DB → exit
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from pydantic import ValidationError

from config.settings import Settings, get_settings
from database.manager import DatabaseManager
from database.repositories import CheckResultRepository, MonitorRepository
from exceptions.base import ConfigurationError, UptimeMonitorException
from monitoring.control_server import ControlServer
from monitoring.probes import create_probes
from monitoring.scheduler import MonitorScheduler
from monitoring.sink import ResultSink
from monitoring.timers import PeriodicTask, TimerPool
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class UptimeMonitorApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Subsystems receive their dependencies here; only
    Settings is cached globally via lru_cache.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.monitor_repository: Optional[MonitorRepository] = None
        self.result_repository: Optional[CheckResultRepository] = None
        self.sink: Optional[ResultSink] = None
        self.scheduler: Optional[MonitorScheduler] = None
        self.control_server: Optional[ControlServer] = None

        self.maintenance_timers = TimerPool()
        self._purge_task: Optional[PeriodicTask] = None

        # --- lifecycle ---
        self._is_running = False
        self._shutdown_event = asyncio.Event()

    def _print_banner(self) -> None:
        logger.info("=" * 74)
        logger.info(f"  {self.settings.app_name} v{self.settings.app_version}")
        logger.info(
            f"  Environment: {self.settings.environment.value}   "
            f"Database: {self.settings.database.type.value}"
        )
        logger.info("=" * 74)

    # ==================================================================
    # PHASE 1: DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            if not await self.db_manager.check_connection():
                logger.error("  ✗ Database connection check failed")
                return False

            logger.info(f"  ✓ Connected to {self.settings.database.type.value}")
            return True

        except UptimeMonitorException as e:
            logger.error(f"  ✗ Database init failed: {e.log_format()}")
            return False

    # ==================================================================
    # PHASE 2: MONITORING
    # ==================================================================

    async def _init_monitoring(self) -> bool:
        """Wire up repositories, sink, probes and the scheduler."""
        logger.info("── Phase 2: Monitoring ───────────────────────────")
        monitoring = self.settings.monitoring

        self.monitor_repository = MonitorRepository(self.db_manager, monitoring)
        self.result_repository = CheckResultRepository(self.db_manager)
        self.sink = ResultSink(self.result_repository)

        self.scheduler = MonitorScheduler(
            registry=self.monitor_repository,
            sink=self.sink,
            probes=create_probes(monitoring),
            settings=monitoring,
        )

        try:
            active = await self.monitor_repository.count(active_only=True)
        except UptimeMonitorException as e:
            logger.error(f"  ✗ Could not read the monitor registry: {e.log_format()}")
            return False

        logger.info(f"  ✓ Scheduler created ({active} active monitor(s) registered)")
        return True

    # ==================================================================
    # PHASE 3: CONTROL API
    # ==================================================================

    async def _init_control_server(self) -> bool:
        logger.info("── Phase 3: Control API ──────────────────────────")
        if not self.settings.server.enabled:
            logger.info("  Control API disabled (API_ENABLED=false)")
            return True

        self.control_server = ControlServer(
            settings=self.settings,
            scheduler=self.scheduler,
            monitors=self.monitor_repository,
            results=self.result_repository,
            sink=self.sink,
            db_manager=self.db_manager,
        )
        logger.info("  ✓ Control server created")
        return True

    # ==================================================================
    # RETENTION
    # ==================================================================

    async def _purge_history(self) -> None:
        await self.sink.purge_older_than(self.settings.monitoring.retention_days)

    def _start_retention(self) -> None:
        monitoring = self.settings.monitoring
        if monitoring.retention_days <= 0:
            logger.info("  Check history retention disabled (keeping everything)")
            return

        self._purge_task = self.maintenance_timers.schedule(
            monitoring.purge_interval,
            self._purge_history,
            name="retention-purge",
        )
        logger.info(
            f"  ✓ Retention purge every {monitoring.purge_interval}s "
            f"(keeping {monitoring.retention_days} days)"
        )

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any critical phase fails.
        """
        self._print_banner()

        if not await self._init_database():
            return False

        if not await self._init_monitoring():
            return False

        await self._init_control_server()

        logger.info("── Starting services ──────────────────────────────")

        if self.control_server:
            try:
                await self.control_server.start()
            except OSError as e:
                logger.error(f"  ✗ Control server could not bind: {e}")
                return False

        try:
            await self.scheduler.start()
        except UptimeMonitorException as e:
            logger.error(f"  ✗ Scheduler start failed: {e.log_format()}")
            return False

        self._start_retention()

        self._is_running = True

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        if self.control_server:
            logger.info(
                f"  Control API: http://{self.settings.server.host}:"
                f"{self.settings.server.port}/health"
            )
        logger.info(
            f"  Default interval: {self.settings.monitoring.default_interval}s "
            f"(allowed {self.settings.monitoring.min_interval}-"
            f"{self.settings.monitoring.max_interval}s)"
        )
        logger.info("=" * 74)
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        Each step is wrapped in try/except so a failure in one subsystem
        doesn't prevent the others from cleaning up.
        """
        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        self._is_running = False

        # 1. Stop accepting API requests
        if self.control_server:
            try:
                await self.control_server.stop()
            except Exception:
                logger.exception("  ✗ Control server stop error")

        # 2. Stop the scheduler and let running checks finish
        if self.scheduler:
            try:
                if self.scheduler.is_running:
                    await self.scheduler.stop()
                unfinished = await self.scheduler.drain(self.settings.monitoring.shutdown_grace)
                if unfinished:
                    logger.warning(f"  ⚠ {unfinished} check(s) abandoned at shutdown")
            except Exception:
                logger.exception("  ✗ Scheduler stop error")

        # 3. Stop retention purge
        if self._purge_task is not None:
            self.maintenance_timers.cancel(self._purge_task)
            await self.maintenance_timers.wait_closed([self._purge_task])
            self._purge_task = None

        # 4. Close database connections
        if self.db_manager:
            try:
                await self.db_manager.close()
                logger.info("  ✓ Database connections closed")
            except Exception:
                logger.exception("  ✗ Database close error")

        logger.info("=" * 74)
        logger.info("  ✓ SHUTDOWN COMPLETE")
        logger.info("=" * 74)

    # ==================================================================
    # RUN
    # ==================================================================

    def request_shutdown(self) -> None:
        if not self._shutdown_event.is_set():
            logger.info("  ⚡ Shutdown requested")
            self._shutdown_event.set()

    async def run(self) -> None:
        """Block until ``request_shutdown`` is called (signal handler)."""
        await self._shutdown_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: UptimeMonitorApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so that the monitor shuts down
    gracefully even when killed by the OS.
    """
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, app.request_shutdown)
        except (NotImplementedError, OSError):
            # Windows: rely on KeyboardInterrupt instead
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> int:
    """
    Async main: creates the app, starts it, and runs until shutdown.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        error = ConfigurationError("Invalid configuration", cause=e)
        logger.error(f"✗ {error.log_format()}")
        return 2

    setup_logging(settings.logging)

    app = UptimeMonitorApplication(settings)
    _install_signal_handlers(app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed: exiting")
            return 1
        await app.run()
    finally:
        await app.shutdown()

    return 0


def cli() -> None:
    """Console entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
