"""
============================================================================
UPTIME MONITOR - CHECK CYCLE RUNNER
============================================================================
One cycle = one pass over every registered endpoint.

Architecture
------------
CheckCycleRunner.run_once()
├── EndpointRepository.list_endpoints()   ← fresh list every cycle
├── TrackerRegistry.retain()              ← forget removed endpoints
└── asyncio.gather(_run_guarded(e) ...)   ← bounded by a semaphore
    └── _process_endpoint()
        ├── HTTPProber.check()            ← never raises
        ├── CheckRepository.append()      ← own transaction per record
        ├── DowntimeTracker.observe()     ← only after a successful write
        └── AlertManager.enqueue()        ← non-blocking

Each endpoint is handled by exactly one task per cycle and cycles never
overlap, so an endpoint's records are written and fed to its tracker in
the order they were produced. A failure while handling one endpoint is
logged and reported in the CycleSummary; the other endpoints carry on.
============================================================================
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from config.constants import CheckStatus, Defaults
from config.settings import MonitoringSettings, get_settings
from database.models import CheckRecord, Endpoint
from database.repositories import CheckRepository, EndpointRepository
from exceptions import CycleInProgressError
from monitoring.alerts import AlertManager
from monitoring.prober import HTTPProber
from monitoring.tracker import DowntimeTracker, TrackerRegistry
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.timezone import isoformat_utc


logger = get_logger("CheckCycleRunner")

# Enough history to rebuild a streak after a restart
REHYDRATE_HISTORY = 100


# ============================================================================
# CYCLE SUMMARY
# ============================================================================

@dataclass
class EndpointOutcome:
    endpoint_id: uuid.UUID
    name: str
    url: str
    status: CheckStatus
    response_time: Optional[int]
    http_code: Optional[int]
    error_message: Optional[str] = None
    alert: Optional[str] = None
    alert_event: Optional[Dict[str, Any]] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.endpoint_id),
            "name": self.name,
            "url": self.url,
            "status": self.status.value,
            "response_time": self.response_time,
            "http_code": self.http_code,
            "error_message": self.error_message,
            "alert": self.alert,
        }


@dataclass
class EndpointFailure:
    endpoint_id: uuid.UUID
    name: str
    error: str
    error_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.endpoint_id),
            "name": self.name,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class CycleSummary:
    """Outcome of one check cycle."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    total: int = 0
    results: List[EndpointOutcome] = field(default_factory=list)
    errors: List[EndpointFailure] = field(default_factory=list)
    alerts: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def checked(self) -> int:
        return len(self.results)

    @property
    def up(self) -> int:
        return sum(1 for r in self.results if r.status == CheckStatus.UP)

    @property
    def down(self) -> int:
        return sum(1 for r in self.results if r.status == CheckStatus.DOWN)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": True,
            "timestamp": isoformat_utc(self.finished_at or self.started_at),
            "started_at": isoformat_utc(self.started_at),
            "summary": {
                "total": self.total,
                "checked": self.checked,
                "up": self.up,
                "down": self.down,
                "errors": len(self.errors),
                "alerts": len(self.alerts),
            },
            "results": [r.to_dict() for r in self.results],
            "errors": [e.to_dict() for e in self.errors],
            "alerts": self.alerts,
            "duration": f"{self.duration_ms}ms",
            "duration_ms": self.duration_ms,
        }
        if self.total == 0:
            data["message"] = Defaults.NO_ENDPOINTS_MESSAGE
        return data


# ============================================================================
# CHECK CYCLE RUNNER
# ============================================================================

class CheckCycleRunner:
    """
    Runs check cycles on demand. Owns the downtime tracker map.

    Parameters
    ----------
    endpoints : EndpointRepository
        The endpoint registry.
    checks : CheckRepository
        The check store.
    prober : HTTPProber
        Performs the HTTP probes.
    alert_manager : AlertManager | None
        Receives alert events. If None, events are only logged.
    settings : MonitoringSettings | None
        Threshold, concurrency and tracker capacity.
    """

    def __init__(
        self,
        endpoints: EndpointRepository,
        checks: CheckRepository,
        prober: HTTPProber,
        alert_manager: Optional[AlertManager] = None,
        settings: Optional[MonitoringSettings] = None,
    ):
        self.settings = settings or get_settings().monitoring
        self.endpoints = endpoints
        self.checks = checks
        self.prober = prober
        self.alert_manager = alert_manager

        self.trackers = TrackerRegistry(
            threshold=self.settings.alert_threshold,
            capacity=self.settings.tracker_capacity,
        )

        # --- concurrency control ---
        self._cycle_lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_probes)
        self._current_started_at: Optional[datetime] = None
        self._in_flight = 0

        # --- diagnostics ---
        self._cycles_completed = 0
        self._last_summary: Optional[CycleSummary] = None

        logger.info(
            f"CheckCycleRunner created — threshold={self.settings.alert_threshold}, "
            f"max_concurrent={self.settings.max_concurrent_probes}"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def in_flight_checks(self) -> int:
        return self._in_flight

    @property
    def last_summary(self) -> Optional[CycleSummary]:
        return self._last_summary

    async def run_once(self) -> CycleSummary:
        """
        Probe every registered endpoint once.

        Raises:
            CycleInProgressError: If another cycle has not finished yet
            DatabaseException: If the endpoint list cannot be read
        """
        if self._cycle_lock.locked():
            started = self._current_started_at
            raise CycleInProgressError(started_at=isoformat_utc(started) if started else None)

        async with self._cycle_lock:
            self._current_started_at = TimeHelper.get_utc_now()
            try:
                summary = await self._run_cycle(self._current_started_at)
            finally:
                self._current_started_at = None

        self._cycles_completed += 1
        self._last_summary = summary
        return summary

    async def wait_until_idle(self) -> None:
        """Return once no check cycle is running."""
        if not self._cycle_lock.locked():
            return
        logger.info("[Runner] Waiting for the running check cycle to finish")
        async with self._cycle_lock:
            pass

    async def check_endpoint(self, endpoint: Endpoint) -> CheckRecord:
        """
        Probe one endpoint and append the result to the check store.

        Does not touch the endpoint's tracker; used directly for the
        initial check of a newly registered endpoint.
        """
        result = await self.prober.check(endpoint.url)
        record = CheckRecord(
            endpoint_id=endpoint.id,
            status=result.status,
            http_code=result.http_code,
            response_time=result.response_time,
            error_message=result.error_message,
            error_kind=result.error_kind,
            checked_at=TimeHelper.get_utc_now(),
        )
        return await self.checks.append(record)

    def get_stats(self) -> Dict[str, Any]:
        last = self._last_summary
        return {
            "is_running": self.is_running,
            "in_flight_checks": self._in_flight,
            "cycles_completed": self._cycles_completed,
            "trackers": len(self.trackers),
            "tracker_evictions": self.trackers.evictions,
            "last_cycle": last.to_dict()["summary"] if last else None,
            "last_cycle_at": isoformat_utc(last.started_at) if last else None,
        }

    # ------------------------------------------------------------------
    # CYCLE
    # ------------------------------------------------------------------

    async def _run_cycle(self, started_at: datetime) -> CycleSummary:
        t0 = time.perf_counter()
        summary = CycleSummary(started_at=started_at)

        endpoints = await self.endpoints.list_endpoints()
        summary.total = len(endpoints)
        self.trackers.retain(endpoint.id for endpoint in endpoints)

        if not endpoints:
            logger.info("[Runner] No endpoints to monitor")
        else:
            logger.debug(f"[Runner] Checking {len(endpoints)} endpoint(s)")
            outcomes = await asyncio.gather(
                *(self._run_guarded(endpoint) for endpoint in endpoints),
                return_exceptions=True,
            )

            for endpoint, outcome in zip(endpoints, outcomes):
                if isinstance(outcome, EndpointOutcome):
                    summary.results.append(outcome)
                elif isinstance(outcome, EndpointFailure):
                    summary.errors.append(outcome)
                else:
                    logger.error(f"[Runner] Check for {endpoint.name} raised: {outcome!r}")
                    summary.errors.append(self._failure(endpoint, outcome))

            summary.alerts = [r.alert_event for r in summary.results if r.alert_event]

        summary.finished_at = TimeHelper.get_utc_now()
        summary.duration_ms = int(round((time.perf_counter() - t0) * 1000))

        logger.info(
            f"[Runner] Cycle finished in {summary.duration_ms}ms — "
            f"{summary.checked}/{summary.total} checked, 🟢 {summary.up} up, "
            f"🔴 {summary.down} down, {len(summary.errors)} error(s)"
        )
        return summary

    # ------------------------------------------------------------------
    # PER-ENDPOINT PROCESSING
    # ------------------------------------------------------------------

    async def _run_guarded(self, endpoint: Endpoint):
        """Process one endpoint while holding a concurrency slot."""
        async with self._semaphore:
            self._in_flight += 1
            try:
                return await self._process_endpoint(endpoint)
            finally:
                self._in_flight -= 1

    async def _process_endpoint(self, endpoint: Endpoint):
        """
        Probe, persist, then update the tracker and dispatch any alert.

        The tracker only sees a result once its record is stored, so a
        failed write leaves the streak untouched.
        """
        tracker, created = self.trackers.get_or_create(endpoint.id)

        if created and self.settings.rehydrate_trackers:
            try:
                await self._rehydrate(tracker, endpoint)
            except Exception as e:
                # Unseeded tracker, rehydrate again next cycle
                self.trackers.discard(endpoint.id)
                logger.exception(f"[Runner] History read failed for {endpoint.name}: {e}")
                return self._failure(endpoint, e)

        try:
            record = await self.check_endpoint(endpoint)
        except Exception as e:
            logger.exception(f"[Runner] Check failed for {endpoint.name}: {e}")
            return self._failure(endpoint, e)

        outcome = EndpointOutcome(
            endpoint_id=endpoint.id,
            name=endpoint.name,
            url=endpoint.url,
            status=record.status,
            response_time=record.response_time,
            http_code=record.http_code,
            error_message=record.error_message,
        )

        event = tracker.observe_record(endpoint, record)
        if event is not None:
            outcome.alert = event.kind
            outcome.alert_event = event.to_dict()
            self._dispatch(event)

        return outcome

    async def _rehydrate(self, tracker: DowntimeTracker, endpoint: Endpoint) -> None:
        """Seed a fresh tracker from the endpoint's stored history."""
        limit = max(self.settings.alert_threshold + 1, REHYDRATE_HISTORY)
        recent = await self.checks.recent(endpoint.id, limit=limit)
        if not recent:
            return
        tracker.rehydrate(recent)
        if tracker.consecutive_failures:
            logger.info(
                f"[Runner] Rehydrated {endpoint.name}: {tracker.consecutive_failures} "
                f"consecutive failure(s), alert_sent={tracker.alert_sent}"
            )

    def _dispatch(self, event) -> None:
        if event.kind == "downtime":
            logger.warning(
                f"[Runner] 🔴 {event.endpoint_name} DOWN for {event.downtime_minutes} minute(s) "
                f"after {event.consecutive_failures} consecutive failure(s)"
            )
        else:
            logger.info(
                f"[Runner] 🟢 {event.endpoint_name} recovered after "
                f"{event.downtime_minutes} minute(s)"
            )

        if self.alert_manager is None:
            return
        try:
            self.alert_manager.enqueue(event)
        except Exception as e:
            logger.exception(f"[Runner] Could not enqueue {event.kind} alert for {event.endpoint_name}: {e}")

    @staticmethod
    def _failure(endpoint: Endpoint, exc: BaseException) -> EndpointFailure:
        return EndpointFailure(
            endpoint_id=endpoint.id,
            name=endpoint.name,
            error=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
        )
