"""
============================================================================
UPTIME MONITOR - MAIN APPLICATION
============================================================================
Composition root. Builds every subsystem once, wires them together and
owns the startup / shutdown order. Nothing else in the project holds a
process-global instance (except Settings, cached via lru_cache).

    Layer 1 — Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + models
        • EndpointRepository / CheckRepository

    Layer 2 — Monitoring Engine
        • HTTPProber          — one GET per endpoint per cycle
        • CheckCycleRunner    — probe, persist, track, alert
        • AlertManager        — queue + chat-webhook delivery
        • Scheduler           — periodic check cycle + heartbeat

    Layer 3 — Query & Control Surface
        • Aggregator          — day detail, status rollup, range report
        • ApiServer           — aiohttp routes for cron, scheduler, reports

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Create repositories
4.  Create prober, alert formatter / sink / manager
5.  Create check cycle runner and aggregator
6.  Create scheduler and API server
7.  Start AlertManager dispatch loop
8.  Start ApiServer
9.  Start Scheduler (if MONITOR_AUTOSTART_SCHEDULER)
10. Wait for SIGINT / SIGTERM

Shutdown Order (reverse)
-------------------------
    stop scheduler (in-flight cycle finishes) → wait for a cron-triggered
    cycle → stop API server → stop alert manager (drains queue) →
    close DB → exit
============================================================================
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Path setup: ensure the project root is importable regardless of CWD
# ---------------------------------------------------------------------------
sys.path.insert(0, str(Path(__file__).parent))

# ---------------------------------------------------------------------------
# Project imports
# ---------------------------------------------------------------------------
from api.server import ApiServer
from config.settings import Settings, get_settings
from database.connection import DatabaseManager
from database.repositories import CheckRepository, EndpointRepository
from monitoring.aggregator import Aggregator
from monitoring.alerts import AlertFormatter, AlertManager, WebhookAlertSink
from monitoring.prober import HTTPProber
from monitoring.runner import CheckCycleRunner
from monitoring.scheduler import Scheduler
from utils.logger import get_logger, setup_logging
from utils.timezone import parse_utc_offset, timezone_label


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class UptimeMonitorApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Subsystems receive what they need through their
    constructors.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.endpoint_repo: Optional[EndpointRepository] = None
        self.check_repo: Optional[CheckRepository] = None
        self.alert_manager: Optional[AlertManager] = None
        self.runner: Optional[CheckCycleRunner] = None
        self.aggregator: Optional[Aggregator] = None
        self.scheduler: Optional[Scheduler] = None
        self.api_server: Optional[ApiServer] = None

        # --- lifecycle ---
        self._is_running = False
        self._shutdown_event = asyncio.Event()

        self._print_banner()

    # ------------------------------------------------------------------
    # BANNER
    # ------------------------------------------------------------------

    def _print_banner(self) -> None:
        s = self.settings
        banner = f"""
╔══════════════════════════════════════════════════════════════════════════╗
║                                                                          ║
║          🚀  {s.app_name.upper():<20}  v{s.app_version:<20}              ║
║                                                                          ║
║   Prober  •  Downtime Tracker  •  Alerts  •  Scheduler  •  Reports       ║
║                                                                          ║
║   Database : {s.database.type.value:<10}   Port : {s.server.port:<8}                          ║
║   Interval : {s.monitoring.check_interval:<6g}s     Threshold : {s.monitoring.alert_threshold:<4}                        ║
║                                                                          ║
╚══════════════════════════════════════════════════════════════════════════╝
"""
        logger.info(banner)

    # ==================================================================
    # PHASE 1: DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and repositories."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            self.endpoint_repo = EndpointRepository(self.db_manager)
            self.check_repo = CheckRepository(self.db_manager)

            endpoints = await self.endpoint_repo.count()
            checks = await self.check_repo.count()
            logger.info(
                f"  ✓ Connected to {self.settings.database.type.value} — "
                f"endpoints={endpoints}, checks={checks}"
            )
            return True

        except Exception as e:
            logger.exception(f"  ✗ Database init failed: {e}")
            return False

    # ==================================================================
    # PHASE 2: MONITORING ENGINE
    # ==================================================================

    async def _init_monitoring(self) -> bool:
        """Wire up prober, alert pipeline, runner and scheduler."""
        logger.info("── Phase 2: Monitoring Engine ────────────────────")
        try:
            tz = parse_utc_offset(self.settings.reporting.timezone)

            prober = HTTPProber(self.settings.monitoring)
            self.alert_manager = AlertManager(
                sink=WebhookAlertSink(self.settings.alerts),
                formatter=AlertFormatter(tz),
                settings=self.settings.alerts,
            )
            self.runner = CheckCycleRunner(
                endpoints=self.endpoint_repo,
                checks=self.check_repo,
                prober=prober,
                alert_manager=self.alert_manager,
                settings=self.settings.monitoring,
            )
            self.scheduler = Scheduler(
                runner=self.runner,
                db_manager=self.db_manager,
                settings=self.settings.monitoring,
            )

            if not self.alert_manager.sink.is_configured:
                logger.warning("  ⚠ ALERT_WEBHOOK_URL is not set — alerts will only be logged")

            logger.info(
                f"  ✓ Prober, AlertManager, CheckCycleRunner, Scheduler created "
                f"(reporting timezone {timezone_label(tz)})"
            )
            return True

        except Exception as e:
            logger.exception(f"  ✗ Monitoring init failed: {e}")
            return False

    # ==================================================================
    # PHASE 3: QUERY & CONTROL SURFACE
    # ==================================================================

    async def _init_api(self) -> bool:
        """Create the aggregator and the aiohttp API server."""
        logger.info("── Phase 3: API Server ───────────────────────────")
        try:
            self.aggregator = Aggregator(
                endpoints=self.endpoint_repo,
                checks=self.check_repo,
                settings=self.settings.reporting,
            )
            self.api_server = ApiServer(
                runner=self.runner,
                scheduler=self.scheduler,
                aggregator=self.aggregator,
                alert_manager=self.alert_manager,
                settings=self.settings,
            )

            if self.settings.security.cron_secret is None:
                logger.warning("  ⚠ SECURITY_CRON_SECRET is not set — protected routes will answer 500")

            logger.info("  ✓ Aggregator and ApiServer created")
            return True

        except Exception as e:
            logger.exception(f"  ✗ API init failed: {e}")
            return False

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any phase fails.
        """
        logger.info("=" * 74)
        logger.info("  STARTING UP …")
        logger.info("=" * 74)

        if not await self._init_database():
            return False

        if not await self._init_monitoring():
            return False

        if not await self._init_api():
            return False

        # --- START background services ---
        logger.info("── Starting background services ───────────────────")

        await self.alert_manager.start()
        await self.api_server.start()

        if self.settings.monitoring.autostart_scheduler:
            await self.scheduler.start()
        else:
            logger.info("  Scheduler autostart disabled — use POST /api/scheduler/start")

        self._is_running = True

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info("=" * 74)
        logger.info(
            f"  Health endpoint: http://{self.settings.server.host}:"
            f"{self.settings.server.port}/health"
        )
        logger.info(
            f"  Monitoring: {self.settings.monitoring.max_concurrent_probes} concurrent, "
            f"{self.settings.monitoring.check_interval:g}s interval, "
            f"alert after {self.settings.monitoring.alert_threshold} failures"
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

        # 1. Stop scheduler (lets an in-flight cycle finish)
        if self.scheduler:
            try:
                await self.scheduler.stop()
            except Exception as e:
                logger.exception(f"  ✗ Scheduler stop error: {e}")

        # 2. Let a cron-triggered cycle finish before its request is torn down
        if self.runner:
            try:
                await self.runner.wait_until_idle()
            except Exception as e:
                logger.exception(f"  ✗ Check cycle wait error: {e}")

        # 3. Stop API server
        if self.api_server:
            try:
                await self.api_server.stop()
            except Exception as e:
                logger.exception(f"  ✗ ApiServer stop error: {e}")

        # 4. Stop alert manager (drains queue)
        if self.alert_manager:
            try:
                await self.alert_manager.stop()
            except Exception as e:
                logger.exception(f"  ✗ AlertManager stop error: {e}")

        # 5. Close database connections
        if self.db_manager:
            try:
                await self.db_manager.close()
            except Exception as e:
                logger.exception(f"  ✗ Database close error: {e}")

        logger.info("=" * 74)
        logger.info("  ✓ SHUTDOWN COMPLETE")
        logger.info("=" * 74)

    # ==================================================================
    # RUN
    # ==================================================================

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        """Block until a shutdown is requested."""
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

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info(f"  ⚡ {sig.name} received — initiating graceful shutdown…")
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, OSError):
            # Not supported on Windows; KeyboardInterrupt still works there
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> None:
    """
    Async main — creates the app, starts it, and runs until shutdown.
    """
    settings = get_settings()
    setup_logging(settings)

    app = UptimeMonitorApplication(settings)
    _install_signal_handlers(app)

    if not await app.startup():
        logger.error("  ✗ Startup failed — exiting")
        await app.shutdown()
        sys.exit(1)

    try:
        await app.run()
    finally:
        await app.shutdown()


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

def cli() -> None:
    """Console-script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
