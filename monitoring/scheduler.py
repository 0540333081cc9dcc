"""
============================================================================
UPTIME MONITOR - BACKGROUND TASK SCHEDULER
============================================================================
A lightweight, asyncio-native job scheduler. All jobs run as coroutines in
the same event loop as the API server, keeping the deployment a single
process with no broker.

Registered Jobs
---------------
1.  check_cycle   (every MONITOR_CHECK_INTERVAL, default 30 s)
    Runs one CheckCycleRunner cycle over every registered endpoint.

2.  heartbeat     (every MONITOR_HEARTBEAT_INTERVAL, default 10 min)
    Logs a liveness line with database reachability so operators can see
    the process is alive during quiet periods.

Overlap policy
--------------
A job is never run twice at once. If a job is still running when it is
due again, that tick is skipped and a warning is logged. A check cycle
that was started manually (cron endpoint) makes the scheduled tick skip
the same way.

Lifecycle
---------
``start()`` and ``stop()`` are serialised by a lifecycle lock, so a start
issued while a stop is still draining waits for it and at most one main
loop is ever alive. ``start()`` reports whether this call started the
loop. ``stop()`` prevents new ticks and waits for in-flight jobs to
finish instead of cancelling them. Each loop exits on its own stop
event.
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config.settings import MonitoringSettings, get_settings
from database.connection import DatabaseManager
from exceptions import CycleInProgressError, SchedulerError
from monitoring.runner import CheckCycleRunner
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.timezone import isoformat_utc


logger = get_logger("Scheduler")


# ============================================================================
# JOB DEFINITION
# ============================================================================

@dataclass
class ScheduledJob:
    """
    Describes a single periodic background job.

    Attributes
    ----------
    name : str
        Identifier used in logs and stats.
    interval_seconds : float
        How often the job runs.
    coroutine_factory : Callable
        An async callable (no arguments) that performs the work.
    enabled : bool
        Disabled jobs are registered but never launched.
    next_run : float
        Monotonic time when the job should next execute.
    running : bool
        True while an execution is in flight.
    """
    name: str
    interval_seconds: float
    coroutine_factory: Callable[[], Awaitable[Any]]
    enabled: bool = True
    next_run: float = field(default_factory=time.monotonic)
    last_run: Optional[datetime] = None
    last_duration: Optional[float] = None
    last_error: Optional[str] = None
    running: bool = False
    run_count: int = 0
    skip_count: int = 0
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "running": self.running,
            "run_count": self.run_count,
            "skip_count": self.skip_count,
            "error_count": self.error_count,
            "last_run": isoformat_utc(self.last_run) if self.last_run else None,
            "last_duration_seconds": (
                round(self.last_duration, 3) if self.last_duration is not None else None
            ),
            "last_error": self.last_error,
        }


# ============================================================================
# SCHEDULER
# ============================================================================

class Scheduler:
    """
    Asyncio-based periodic job scheduler.

    Usage
    -----
        scheduler = Scheduler(runner, db_manager)
        await scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        runner: CheckCycleRunner,
        db_manager: Optional[DatabaseManager] = None,
        settings: Optional[MonitoringSettings] = None,
    ):
        self.settings = settings or get_settings().monitoring
        self.runner = runner
        self.db_manager = db_manager

        self._jobs: Dict[str, ScheduledJob] = {}
        self._running = False
        self._lifecycle_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._job_tasks: Set[asyncio.Task] = set()
        self._tick_interval = self.settings.scheduler_tick
        self._started_at: Optional[datetime] = None

        self._register_builtin_jobs()

        logger.info(f"Scheduler created with {len(self._jobs)} built-in jobs")

    # ------------------------------------------------------------------
    # JOB REGISTRATION
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: float,
        coroutine_factory: Callable[[], Awaitable[Any]],
        enabled: bool = True,
    ) -> ScheduledJob:
        """
        Register a new periodic job. The first run is due immediately.

        Raises:
            SchedulerError: If a job with this name exists or the interval
                is not positive
        """
        if name in self._jobs:
            raise SchedulerError(f"Job '{name}' is already registered", job_name=name)
        if interval_seconds <= 0:
            raise SchedulerError(f"Job '{name}' needs a positive interval", job_name=name)

        job = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
        )
        self._jobs[name] = job
        logger.debug(f"[Scheduler] Registered job '{name}' (interval={interval_seconds}s)")
        return job

    def get_job(self, name: str) -> Optional[ScheduledJob]:
        return self._jobs.get(name)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> bool:
        """
        Start the scheduler loop. Waits for a stop that is still draining.

        Returns:
            True if this call started the loop, False if it was running
        """
        async with self._lifecycle_lock:
            if self._running:
                logger.warning("Scheduler is already running")
                return False
            self._running = True

            stop_event = asyncio.Event()
            self._stop_event = stop_event
            self._started_at = TimeHelper.get_utc_now()
            now = time.monotonic()
            for job in self._jobs.values():
                job.next_run = now

            self._loop_task = asyncio.create_task(self._main_loop(stop_event))

        logger.info(
            f"✓ Scheduler started — check interval {self.settings.check_interval:g}s"
        )
        return True

    async def stop(self) -> bool:
        """
        Stop scheduling new ticks and wait for running jobs to finish.

        Returns:
            True if the scheduler was running
        """
        async with self._lifecycle_lock:
            if not self._running:
                return False
            self._running = False

            self._stop_event.set()
            await self._loop_task
            self._loop_task = None
            self._stop_event = None

            if self._job_tasks:
                logger.info(f"[Scheduler] Waiting for {len(self._job_tasks)} running job(s)")
                await asyncio.gather(*self._job_tasks, return_exceptions=True)

            self._started_at = None

        logger.info("✓ Scheduler stopped")
        return True

    # ------------------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------------------

    async def _main_loop(self, stop_event: asyncio.Event) -> None:
        """
        Wake up every _tick_interval seconds and launch each enabled job
        whose next_run time has arrived, until this loop's stop event is set.
        """
        logger.info("[Scheduler] Main loop started")
        while not stop_event.is_set():
            self._tick(time.monotonic())

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._tick_interval)
            except asyncio.TimeoutError:
                continue

        logger.info("[Scheduler] Main loop exited")

    def _tick(self, now: float) -> None:
        for job in self._jobs.values():
            if not job.enabled or now < job.next_run:
                continue

            # Advance next_run first so a slow job cannot re-trigger
            job.next_run = now + job.interval_seconds

            if job.running:
                job.skip_count += 1
                logger.warning(
                    f"[Scheduler] Job '{job.name}' still running, skipping this tick"
                )
                continue

            job.running = True
            task = asyncio.create_task(self._execute_job(job))
            self._job_tasks.add(task)
            task.add_done_callback(self._job_tasks.discard)

    # ------------------------------------------------------------------
    # JOB EXECUTION
    # ------------------------------------------------------------------

    async def _execute_job(self, job: ScheduledJob) -> None:
        """
        Run a single job, capture timing and errors.
        """
        start_time = time.perf_counter()
        job.last_run = TimeHelper.get_utc_now()
        try:
            logger.debug(f"[Scheduler] Running job '{job.name}'…")
            await job.coroutine_factory()
            job.run_count += 1
            job.last_error = None
            logger.debug(
                f"[Scheduler] Job '{job.name}' completed in "
                f"{time.perf_counter() - start_time:.2f}s (run #{job.run_count})"
            )

        except CycleInProgressError:
            job.skip_count += 1
            logger.warning(
                f"[Scheduler] Job '{job.name}' skipped: a check cycle is already in progress"
            )

        except Exception as e:
            job.error_count += 1
            job.last_error = str(e)
            logger.exception(
                f"[Scheduler] Job '{job.name}' FAILED after "
                f"{time.perf_counter() - start_time:.2f}s: {e}"
            )

        finally:
            job.last_duration = time.perf_counter() - start_time
            job.running = False

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Return status of all registered jobs."""
        return [job.to_dict() for job in self._jobs.values()]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "started_at": isoformat_utc(self._started_at) if self._started_at else None,
            "check_interval_seconds": self.settings.check_interval,
            "cycle_in_progress": self.runner.is_running,
            "jobs": self.get_job_stats(),
        }

    # ==================================================================
    # BUILT-IN JOBS
    # ==================================================================

    def _register_builtin_jobs(self) -> None:
        """Register all built-in periodic jobs."""

        # 1. Check cycle
        self.register_job(
            "check_cycle",
            interval_seconds=self.settings.check_interval,
            coroutine_factory=self._job_check_cycle,
        )

        # 2. Heartbeat
        self.register_job(
            "heartbeat",
            interval_seconds=self.settings.heartbeat_interval,
            coroutine_factory=self._job_heartbeat,
        )

    async def _job_check_cycle(self) -> None:
        await self.runner.run_once()

    async def _job_heartbeat(self) -> None:
        """
        Log a heartbeat line. If you see these in the log, the monitor is
        alive.
        """
        db_ok = await self.db_manager.check_connection() if self.db_manager else None
        db_state = "n/a" if db_ok is None else ("OK" if db_ok else "FAIL")
        logger.info(
            f"[Heartbeat] ✓ Monitor alive — db={db_state}, "
            f"trackers={len(self.runner.trackers)}, "
            f"time={TimeHelper.get_utc_now().strftime('%Y-%m-%d %H:%M:%S')} UTC"
        )
