"""
============================================================================
UPTIME MONITOR - CONTROL SERVER
============================================================================
Small aiohttp JSON API in front of the scheduler and the registry.

Routes
------
    GET    /health                          liveness + database check
    GET    /scheduler/status                running flag, timers, counters
    GET    /scheduler/jobs                  active monitors by interval/type
    POST   /scheduler/start|stop|restart    lifecycle (409 on misuse)
    POST   /scheduler/run/{monitor_id}      one manual check
    POST   /scheduler/run-all               check every active monitor
    GET    /monitors                        list (?include_inactive=false)
    POST   /monitors                        create, then schedule
    GET    /monitors/{monitor_id}           read
    PATCH  /monitors/{monitor_id}           update, then reschedule
    DELETE /monitors/{monitor_id}           soft delete, then unschedule
    GET    /monitors/{monitor_id}/checks    history (?limit=)
    GET    /monitors/{monitor_id}/summary   uptime summary (?hours=)
    GET    /checks                          recent checks, all monitors (?limit=)
    GET    /stats                           system-wide summary (?hours=)
    POST   /maintenance/purge               delete old results (?days=)
============================================================================
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web
from pydantic import ValidationError

from config.constants import Defaults, Limits
from config.settings import Settings
from database.schemas import MonitorCreate, MonitorUpdate
from exceptions.base import UptimeMonitorException
from exceptions.database import DuplicateRecordError, RecordNotFoundError
from exceptions.monitoring import SchedulerAlreadyRunningError, SchedulerNotRunningError
from exceptions.validation import ValidationException
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _error(status: int, message: str, **extra: Any) -> web.Response:
    body: Dict[str, Any] = {"error": message}
    body.update(extra)
    return web.json_response(body, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Translate domain exceptions into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return _error(400, "Invalid request body", errors=errors)
    except ValidationException as e:
        return _error(400, e.user_message(), details=e.details)
    except RecordNotFoundError as e:
        return _error(404, e.message)
    except DuplicateRecordError as e:
        return _error(409, e.message)
    except (SchedulerAlreadyRunningError, SchedulerNotRunningError) as e:
        return _error(409, e.message)
    except UptimeMonitorException as e:
        logger.error(f"[API] {request.method} {request.path} failed: {e.log_format()}")
        return _error(500, e.user_message())
    except Exception:
        logger.exception(f"[API] Unhandled error on {request.method} {request.path}")
        return _error(500, "Internal server error")


def _int_param(request: web.Request, name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    raw = request.query.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationException(f"{name} must be an integer", field=name, value=raw)
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ValidationException(f"{name} must be {bound}", field=name, value=value)
    return value


def _monitor_id(request: web.Request) -> int:
    raw = request.match_info["monitor_id"]
    try:
        return int(raw)
    except ValueError:
        raise ValidationException("monitor_id must be an integer", field="monitor_id", value=raw)


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationException("Request body must be valid JSON", field="body")
    if not isinstance(body, dict):
        raise ValidationException("Request body must be a JSON object", field="body")
    return body


class ControlServer:
    """
    HTTP control surface for a running monitor.

    Parameters
    ----------
    settings : Settings
        Application settings; ``settings.server`` gives the bind address.
    scheduler : MonitorScheduler
    monitors : MonitorRepository
    results : CheckResultRepository
    sink : ResultSink
        Used for the purge endpoint.
    db_manager : DatabaseManager, optional
        When given, /health includes a database check.
    """

    def __init__(self, settings: Settings, scheduler, monitors, results, sink, db_manager=None):
        self.settings = settings
        self.scheduler = scheduler
        self.monitors = monitors
        self.results = results
        self.sink = sink
        self.db_manager = db_manager

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._started_at = TimeHelper.get_utc_now()
        self._request_count = 0

        self.app = self.create_app()

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])

        app.router.add_get("/health", self._handle_health)

        app.router.add_get("/scheduler/status", self._handle_status)
        app.router.add_get("/scheduler/jobs", self._handle_jobs)
        app.router.add_post("/scheduler/start", self._handle_start)
        app.router.add_post("/scheduler/stop", self._handle_stop)
        app.router.add_post("/scheduler/restart", self._handle_restart)
        app.router.add_post("/scheduler/run-all", self._handle_run_all)
        app.router.add_post("/scheduler/run/{monitor_id}", self._handle_run_one)

        app.router.add_get("/monitors", self._handle_list_monitors)
        app.router.add_post("/monitors", self._handle_create_monitor)
        app.router.add_get("/monitors/{monitor_id}", self._handle_get_monitor)
        app.router.add_patch("/monitors/{monitor_id}", self._handle_update_monitor)
        app.router.add_delete("/monitors/{monitor_id}", self._handle_delete_monitor)
        app.router.add_get("/monitors/{monitor_id}/checks", self._handle_checks)
        app.router.add_get("/monitors/{monitor_id}/summary", self._handle_summary)

        app.router.add_get("/checks", self._handle_recent_checks)
        app.router.add_get("/stats", self._handle_stats)

        app.router.add_post("/maintenance/purge", self._handle_purge)
        return app

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind and start serving."""
        host = self.settings.server.host
        port = self.settings.server.port

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()
        logger.info(f"✓ Control server listening on {host}:{port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ Control server stopped")

    # ------------------------------------------------------------------
    # HEALTH
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        self._request_count += 1
        uptime_seconds = int((TimeHelper.get_utc_now() - self._started_at).total_seconds())

        database_ok = None
        if self.db_manager is not None:
            database_ok = await self.db_manager.check_connection()

        healthy = database_ok is not False
        health = {
            "status": "healthy" if healthy else "degraded",
            "app": self.settings.app_name,
            "version": self.settings.app_version,
            "uptime_seconds": uptime_seconds,
            "uptime_human": TimeHelper.seconds_to_human_readable(uptime_seconds),
            "requests_served": self._request_count,
            "scheduler_running": self.scheduler.is_running,
            "database": database_ok,
            "timestamp": TimeHelper.get_utc_now().isoformat(),
        }
        return web.json_response(health, status=200 if healthy else 503)

    # ------------------------------------------------------------------
    # SCHEDULER
    # ------------------------------------------------------------------

    async def _handle_status(self, request: web.Request) -> web.Response:
        status = self.scheduler.get_status()
        status["timers"] = self.scheduler.get_timers()
        return web.json_response(status)

    async def _handle_jobs(self, request: web.Request) -> web.Response:
        return web.json_response(await self.scheduler.get_scheduled_jobs())

    async def _handle_start(self, request: web.Request) -> web.Response:
        scheduled = await self.scheduler.start()
        return web.json_response({"running": True, "scheduled": scheduled})

    async def _handle_stop(self, request: web.Request) -> web.Response:
        cancelled = await self.scheduler.stop()
        return web.json_response({"running": False, "cancelled": cancelled})

    async def _handle_restart(self, request: web.Request) -> web.Response:
        scheduled = await self.scheduler.restart()
        return web.json_response({"running": True, "scheduled": scheduled})

    async def _handle_run_one(self, request: web.Request) -> web.Response:
        monitor_id = _monitor_id(request)
        result = await self.scheduler.run_monitor_check(monitor_id)
        if result is None:
            return _error(404, f"Monitor {monitor_id} not found or inactive")
        return web.json_response(result.to_dict())

    async def _handle_run_all(self, request: web.Request) -> web.Response:
        results = await self.scheduler.run_all_checks()
        up = sum(1 for r in results if r.is_up)
        return web.json_response({
            "checked": len(results),
            "up": up,
            "not_up": len(results) - up,
            "results": [r.to_dict() for r in results],
        })

    # ------------------------------------------------------------------
    # MONITORS
    # ------------------------------------------------------------------

    async def _handle_list_monitors(self, request: web.Request) -> web.Response:
        include_inactive = request.query.get("include_inactive", "true").lower() not in ("0", "false", "no")
        monitors = await self.monitors.find_all(include_inactive=include_inactive)
        return web.json_response([m.to_dict() for m in monitors])

    async def _handle_create_monitor(self, request: web.Request) -> web.Response:
        data = MonitorCreate.model_validate(await _json_body(request))
        monitor = await self.monitors.create(data)
        self.scheduler.schedule_monitor(monitor)
        return web.json_response(monitor.to_dict(), status=201)

    async def _handle_get_monitor(self, request: web.Request) -> web.Response:
        monitor_id = _monitor_id(request)
        monitor = await self.monitors.find_by_id(monitor_id)
        if monitor is None:
            raise RecordNotFoundError(
                f"Monitor {monitor_id} not found", entity_type="Monitor", entity_id=monitor_id
            )
        body = monitor.to_dict()
        body["scheduled"] = self.scheduler.is_scheduled(monitor_id)
        return web.json_response(body)

    async def _handle_update_monitor(self, request: web.Request) -> web.Response:
        monitor_id = _monitor_id(request)
        data = MonitorUpdate.model_validate(await _json_body(request))
        monitor = await self.monitors.update(monitor_id, data)
        # an inactive monitor loses its timer here
        self.scheduler.schedule_monitor(monitor)
        return web.json_response(monitor.to_dict())

    async def _handle_delete_monitor(self, request: web.Request) -> web.Response:
        monitor_id = _monitor_id(request)
        if not await self.monitors.delete(monitor_id):
            raise RecordNotFoundError(
                f"Monitor {monitor_id} not found", entity_type="Monitor", entity_id=monitor_id
            )
        self.scheduler.unschedule_monitor(monitor_id)
        return web.Response(status=204)

    async def _handle_checks(self, request: web.Request) -> web.Response:
        monitor_id = _monitor_id(request)
        limit = _int_param(request, "limit", Defaults.HISTORY_LIMIT, maximum=Limits.MAX_HISTORY_LIMIT)
        records = await self.results.find_by_monitor(monitor_id, limit=limit)
        return web.json_response([r.to_dict() for r in records])

    async def _handle_summary(self, request: web.Request) -> web.Response:
        monitor_id = _monitor_id(request)
        hours = _int_param(request, "hours", Defaults.SUMMARY_HOURS)
        return web.json_response(await self.results.summarize(monitor_id, hours=hours))

    async def _handle_recent_checks(self, request: web.Request) -> web.Response:
        limit = _int_param(request, "limit", Defaults.RECENT_LIMIT, maximum=Limits.MAX_HISTORY_LIMIT)
        records = await self.results.find_recent(limit=limit)
        return web.json_response([r.to_dict() for r in records])

    async def _handle_stats(self, request: web.Request) -> web.Response:
        hours = _int_param(request, "hours", Defaults.SUMMARY_HOURS)
        return web.json_response(await self.results.system_summary(hours=hours))

    # ------------------------------------------------------------------
    # MAINTENANCE
    # ------------------------------------------------------------------

    async def _handle_purge(self, request: web.Request) -> web.Response:
        days = _int_param(request, "days", self.settings.monitoring.retention_days or Defaults.RETENTION_DAYS)
        deleted = await self.sink.purge_older_than(days)
        return web.json_response({"deleted": deleted, "days": days})
