"""
============================================================================
UPTIME MONITOR - HTTP API SERVER
============================================================================
Lightweight aiohttp server exposing the monitor to operators, external
cron services and the dashboard.

Routes
------
GET       /health                 liveness, uptime, scheduler / alert stats
GET|POST  /api/cron/monitor       run one check cycle now        (secret)
POST      /api/scheduler/start    start the recurring scheduler  (secret)
POST      /api/scheduler/stop     stop the recurring scheduler   (secret)
GET       /api/scheduler          scheduler state and job stats
GET       /api/day-detail         ?endpointId=&date=[&timezone=]
GET       /api/status             ?endDate=&days=
GET       /api/report             ?startDate=&endDate=[&endpointId=]
GET       /api/endpoints          registered endpoints, by name
POST      /api/endpoints          register + initial check       (secret)
GET       /api/endpoints/{id}     endpoint with its latest checks
PATCH     /api/endpoints/{id}     update name / url / category   (secret)
DELETE    /api/endpoints/{id}     remove with its check records  (secret)
POST      /api/alerts/test        {"message": ...}               (secret)

Errors
------
Every UptimeMonitorException is turned into ``{"error": <user message>}``
with the exception's HTTP status. Authorization failures never say why.
============================================================================
"""

import hmac
import time
import uuid
from typing import Any, Dict, Optional

from aiohttp import web

from config.settings import Settings, get_settings
from exceptions import (
    AuthorizationError,
    ConfigurationError,
    UptimeMonitorException,
    ValidationException,
)
from monitoring.aggregator import Aggregator
from monitoring.alerts import AlertManager
from monitoring.runner import CheckCycleRunner
from monitoring.scheduler import Scheduler
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.timezone import isoformat_utc, parse_utc_offset
from utils.validators import QueryValidator


logger = get_logger("ApiServer")

RECENT_CHECKS_LIMIT = 100


# ============================================================================
# MIDDLEWARE
# ============================================================================

@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Translate application exceptions into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except UptimeMonitorException as e:
        if e.http_status >= 500:
            logger.error(f"[API] {request.method} {request.path} failed: {e.log_format()}")
        else:
            logger.info(f"[API] {request.method} {request.path} rejected: {e.full_message}")
        return web.json_response({"error": e.user_message()}, status=e.http_status)
    except Exception as e:
        logger.exception(f"[API] Unhandled error on {request.method} {request.path}: {e}")
        return web.json_response({"error": "Internal server error"}, status=500)


# ============================================================================
# API SERVER
# ============================================================================

class ApiServer:
    """
    Owns the aiohttp application and its runner / site.

    Attributes
    ----------
    app : aiohttp.web.Application
    _runner : aiohttp.web.AppRunner
    _site : aiohttp.web.TCPSite
    _start_time : float          epoch seconds when the server started
    _request_count : int         total requests served
    """

    def __init__(
        self,
        runner: CheckCycleRunner,
        scheduler: Scheduler,
        aggregator: Aggregator,
        alert_manager: AlertManager,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.cycle_runner = runner
        self.scheduler = scheduler
        self.aggregator = aggregator
        self.alert_manager = alert_manager

        self._host = self.settings.server.host
        self._port = self.settings.server.port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        self.app = self._create_app()

    def _create_app(self) -> web.Application:
        @web.middleware
        async def count_requests(request: web.Request, handler) -> web.StreamResponse:
            self._request_count += 1
            return await handler(request)

        app = web.Application(middlewares=[count_requests, error_middleware])

        app.router.add_get("/health", self._handle_health)
        app.router.add_route("GET", "/api/cron/monitor", self._handle_cron)
        app.router.add_route("POST", "/api/cron/monitor", self._handle_cron)
        app.router.add_get("/api/scheduler", self._handle_scheduler_status)
        app.router.add_post("/api/scheduler/start", self._handle_scheduler_start)
        app.router.add_post("/api/scheduler/stop", self._handle_scheduler_stop)
        app.router.add_get("/api/day-detail", self._handle_day_detail)
        app.router.add_get("/api/status", self._handle_status)
        app.router.add_get("/api/report", self._handle_report)
        app.router.add_get("/api/endpoints", self._handle_list_endpoints)
        app.router.add_post("/api/endpoints", self._handle_create_endpoint)
        app.router.add_get("/api/endpoints/{endpoint_id}", self._handle_get_endpoint)
        app.router.add_patch("/api/endpoints/{endpoint_id}", self._handle_update_endpoint)
        app.router.add_delete("/api/endpoints/{endpoint_id}", self._handle_delete_endpoint)
        app.router.add_post("/api/alerts/test", self._handle_test_alert)
        return app

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info(f"✓ ApiServer listening on {self._host}:{self._port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ ApiServer stopped")

    # ------------------------------------------------------------------
    # AUTHORIZATION
    # ------------------------------------------------------------------

    def _authorize(self, request: web.Request) -> None:
        """
        Check the shared secret. ``Authorization: Bearer <secret>`` and the
        raw secret are both accepted.

        Raises:
            ConfigurationError: If no secret is configured
            AuthorizationError: If the header is missing or wrong
        """
        secret = self.settings.security.cron_secret
        if secret is None or not secret.get_secret_value():
            raise ConfigurationError(
                "SECURITY_CRON_SECRET is not configured",
                config_key="SECURITY_CRON_SECRET",
            )

        header = request.headers.get("Authorization", "").strip()
        token = header[len("Bearer "):].strip() if header.startswith("Bearer ") else header

        if not token or not hmac.compare_digest(
            token.encode("utf-8"), secret.get_secret_value().encode("utf-8")
        ):
            logger.warning(f"[API] Unauthorized {request.method} {request.path} from {request.remote}")
            raise AuthorizationError()

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health — detailed health JSON."""
        uptime_seconds = time.time() - self._start_time

        health: Dict[str, Any] = {
            "status": "healthy",
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": TimeHelper.seconds_to_human_readable(int(uptime_seconds)),
            "requests_served": self._request_count,
            "timestamp": isoformat_utc(TimeHelper.get_utc_now()),
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
            "scheduler_running": self.scheduler.is_running,
            "cycle_in_progress": self.cycle_runner.is_running,
            "alerts": self.alert_manager.get_stats(),
        }
        return web.json_response(health)

    async def _handle_cron(self, request: web.Request) -> web.Response:
        """GET|POST /api/cron/monitor — run one check cycle now."""
        self._authorize(request)
        logger.info("[API] Check cycle triggered via cron endpoint")
        summary = await self.cycle_runner.run_once()
        return web.json_response(summary.to_dict())

    async def _handle_scheduler_status(self, request: web.Request) -> web.Response:
        return web.json_response({
            "scheduler": self.scheduler.get_stats(),
            "runner": self.cycle_runner.get_stats(),
        })

    async def _handle_scheduler_start(self, request: web.Request) -> web.Response:
        self._authorize(request)
        started = await self.scheduler.start()
        return web.json_response({
            "success": True,
            "started": started,
            "message": "Scheduler started" if started else "Scheduler already running",
            "scheduler": self.scheduler.get_stats(),
        })

    async def _handle_scheduler_stop(self, request: web.Request) -> web.Response:
        self._authorize(request)
        stopped = await self.scheduler.stop()
        return web.json_response({
            "success": True,
            "stopped": stopped,
            "message": "Scheduler stopped" if stopped else "Scheduler was not running",
            "scheduler": self.scheduler.get_stats(),
        })

    async def _handle_day_detail(self, request: web.Request) -> web.Response:
        """GET /api/day-detail?endpointId=&date=[&timezone=]"""
        query = request.query
        endpoint_id = QueryValidator.parse_endpoint_id(query.get("endpointId"))
        day = QueryValidator.parse_date(query.get("date"))
        tz_param = query.get("timezone")
        tz = parse_utc_offset(tz_param) if tz_param else None

        detail = await self.aggregator.day_detail(endpoint_id, day, tz)
        return web.json_response(detail.to_dict())

    async def _handle_status(self, request: web.Request) -> web.Response:
        """GET /api/status?endDate=&days="""
        query = request.query
        reporting = self.settings.reporting

        end_param = query.get("endDate")
        end_date = QueryValidator.parse_date(end_param, field="endDate") if end_param else None
        days = QueryValidator.parse_positive_int(
            query.get("days"),
            field="days",
            default=reporting.default_days,
            maximum=reporting.max_days,
        )

        rollup = await self.aggregator.status_rollup(end_date=end_date, days=days)
        return web.json_response(rollup.to_dict())

    async def _handle_report(self, request: web.Request) -> web.Response:
        """GET /api/report?startDate=&endDate=[&endpointId=]"""
        query = request.query
        start_date = QueryValidator.parse_date(query.get("startDate"), field="startDate")
        end_date = QueryValidator.parse_date(query.get("endDate"), field="endDate")
        endpoint_param = query.get("endpointId")
        endpoint_id = QueryValidator.parse_endpoint_id(endpoint_param) if endpoint_param else None

        report = await self.aggregator.range_report(start_date, end_date, endpoint_id)
        return web.json_response(report.to_dict())

    async def _handle_test_alert(self, request: web.Request) -> web.Response:
        """POST /api/alerts/test {"message": ...} — deliver a message right away."""
        self._authorize(request)

        body = await self._read_json(request)
        message = str(body.get("message") or f"🔔 Test alert from {self.settings.app_name}")

        delivered = await self.alert_manager.send_test_message(message)
        if not delivered:
            return web.json_response(
                {"success": False, "error": "Alert delivery failed"},
                status=502,
            )
        return web.json_response({"success": True, "message": "Test alert delivered"})

    # ------------------------------------------------------------------
    # ENDPOINT REGISTRY
    # ------------------------------------------------------------------

    async def _handle_list_endpoints(self, request: web.Request) -> web.Response:
        endpoints = await self.cycle_runner.endpoints.list_endpoints()
        return web.json_response({"endpoints": [e.to_dict() for e in endpoints]})

    async def _handle_create_endpoint(self, request: web.Request) -> web.Response:
        """
        POST /api/endpoints {"name", "url", "category"}

        Registers the endpoint and probes it once right away. A failed
        initial check is logged and reported as ``initial_check: null``;
        the endpoint stays registered and the next cycle picks it up.
        """
        self._authorize(request)
        body = await self._read_json(request)

        endpoint = await self.cycle_runner.endpoints.create(
            name=_text(body, "name"),
            url=_text(body, "url"),
            category=_text(body, "category") or "website",
        )

        initial_check: Optional[Dict[str, Any]] = None
        try:
            record = await self.cycle_runner.check_endpoint(endpoint)
            initial_check = record.to_dict()
        except Exception as e:
            logger.exception(f"[API] Initial check failed for {endpoint.name}: {e}")

        return web.json_response(
            {"success": True, "endpoint": endpoint.to_dict(), "initial_check": initial_check},
            status=201,
        )

    async def _handle_get_endpoint(self, request: web.Request) -> web.Response:
        """GET /api/endpoints/{id} — the endpoint and its latest checks, newest first."""
        endpoint_id = self._endpoint_id(request)
        endpoint = await self.cycle_runner.endpoints.get_or_raise(endpoint_id)
        checks = await self.cycle_runner.checks.recent(endpoint_id, limit=RECENT_CHECKS_LIMIT)
        return web.json_response({
            "endpoint": endpoint.to_dict(),
            "checks": [record.to_dict() for record in checks],
        })

    async def _handle_update_endpoint(self, request: web.Request) -> web.Response:
        self._authorize(request)
        endpoint_id = self._endpoint_id(request)
        body = await self._read_json(request)

        fields = {key: _text(body, key) for key in ("name", "url", "category")}
        if all(value is None for value in fields.values()):
            raise ValidationException(
                "At least one of name, url or category is required",
                field="body",
            )

        endpoint = await self.cycle_runner.endpoints.update(endpoint_id, **fields)
        return web.json_response({"success": True, "endpoint": endpoint.to_dict()})

    async def _handle_delete_endpoint(self, request: web.Request) -> web.Response:
        self._authorize(request)
        endpoint_id = self._endpoint_id(request)
        await self.cycle_runner.endpoints.delete(endpoint_id)
        return web.json_response({"success": True})

    # ------------------------------------------------------------------
    # REQUEST HELPERS
    # ------------------------------------------------------------------

    @staticmethod
    def _endpoint_id(request: web.Request) -> uuid.UUID:
        return QueryValidator.parse_endpoint_id(request.match_info["endpoint_id"], field="id")

    @staticmethod
    async def _read_json(request: web.Request) -> Dict[str, Any]:
        """
        Parse an optional JSON object body. An empty body reads as ``{}``.

        Raises:
            ValidationException: If the body is not a JSON object
        """
        if not request.can_read_body:
            return {}
        try:
            body = await request.json()
        except ValueError as e:
            raise ValidationException("Request body must be JSON", field="body", cause=e) from e
        if not isinstance(body, dict):
            raise ValidationException("Request body must be a JSON object", field="body")
        return body


def _text(body: Dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    return None if value is None else str(value)
