"""
============================================================================
UPTIME MONITOR - DOWNTIME TRACKER
============================================================================
Per-endpoint state machine that separates sustained outages from
transient blips.

States
------
    Healthy      consecutive failures = 0
    Degraded(n)  1 <= n < threshold, no alert yet
    Alerting     n >= threshold, downtime alert sent

Transitions
-----------
    DOWN  → n += 1 (first failure time recorded when n becomes 1).
            When n reaches the threshold and no alert was sent for this
            streak, emit a DowntimeEvent and mark the alert as sent.
    UP    → if the previous status was DOWN and an alert was sent, emit a
            RecoveryEvent. Then reset the streak unconditionally.

The last observed status is updated after the transition is evaluated.
Trackers live in a bounded LRU map owned by the check cycle runner.
============================================================================
"""

import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config.constants import CheckStatus
from database.models import CheckRecord, Endpoint
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.timezone import isoformat_utc


logger = get_logger("DowntimeTracker")


# ============================================================================
# ALERT EVENTS
# ============================================================================

@dataclass(frozen=True)
class DowntimeEvent:
    """Emitted once per outage, when the failure streak reaches the threshold."""
    endpoint_id: uuid.UUID
    endpoint_name: str
    endpoint_url: str
    first_failure_at: datetime
    detected_at: datetime
    downtime_minutes: int
    consecutive_failures: int
    http_code: Optional[int] = None
    error_message: Optional[str] = None

    kind: str = field(default="downtime", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "endpoint_id": str(self.endpoint_id),
            "endpoint_name": self.endpoint_name,
            "endpoint_url": self.endpoint_url,
            "first_failure_at": isoformat_utc(self.first_failure_at),
            "detected_at": isoformat_utc(self.detected_at),
            "downtime_minutes": self.downtime_minutes,
            "consecutive_failures": self.consecutive_failures,
            "http_code": self.http_code,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class RecoveryEvent:
    """Emitted on the first UP after an outage that was alerted on."""
    endpoint_id: uuid.UUID
    endpoint_name: str
    endpoint_url: str
    first_failure_at: datetime
    recovered_at: datetime
    downtime_seconds: int
    downtime_minutes: int

    kind: str = field(default="recovery", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "endpoint_id": str(self.endpoint_id),
            "endpoint_name": self.endpoint_name,
            "endpoint_url": self.endpoint_url,
            "first_failure_at": isoformat_utc(self.first_failure_at),
            "recovered_at": isoformat_utc(self.recovered_at),
            "downtime_seconds": self.downtime_seconds,
            "downtime_minutes": self.downtime_minutes,
        }


AlertEvent = Union[DowntimeEvent, RecoveryEvent]


# ============================================================================
# SINGLE-ENDPOINT STATE MACHINE
# ============================================================================

class DowntimeTracker:
    """
    Streak state for one endpoint.

    Not thread-safe; the runner feeds each endpoint's results in the
    order they were produced and never concurrently.
    """

    __slots__ = (
        "threshold", "consecutive_failures", "first_failure_at",
        "alert_sent", "last_status",
    )

    def __init__(self, threshold: int):
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.consecutive_failures = 0
        self.first_failure_at: Optional[datetime] = None
        self.alert_sent = False
        self.last_status: Optional[CheckStatus] = None

    @property
    def state(self) -> str:
        if self.consecutive_failures == 0:
            return "healthy"
        if self.alert_sent:
            return "alerting"
        return "degraded"

    def observe(
        self,
        endpoint: Endpoint,
        status: CheckStatus,
        observed_at: datetime,
        http_code: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> Optional[AlertEvent]:
        """
        Feed one check result and return the alert event it triggers, if any.
        """
        event: Optional[AlertEvent] = None

        if status == CheckStatus.DOWN:
            self.consecutive_failures += 1
            if self.consecutive_failures == 1 or self.first_failure_at is None:
                self.first_failure_at = observed_at

            if self.consecutive_failures >= self.threshold and not self.alert_sent:
                event = DowntimeEvent(
                    endpoint_id=endpoint.id,
                    endpoint_name=endpoint.name,
                    endpoint_url=endpoint.url,
                    first_failure_at=self.first_failure_at,
                    detected_at=observed_at,
                    downtime_minutes=TimeHelper.minutes_between(self.first_failure_at, observed_at),
                    consecutive_failures=self.consecutive_failures,
                    http_code=http_code,
                    error_message=error_message,
                )
                self.alert_sent = True

        else:
            if self.last_status == CheckStatus.DOWN and self.alert_sent:
                first_failure = self.first_failure_at or observed_at
                event = RecoveryEvent(
                    endpoint_id=endpoint.id,
                    endpoint_name=endpoint.name,
                    endpoint_url=endpoint.url,
                    first_failure_at=first_failure,
                    recovered_at=observed_at,
                    downtime_seconds=max(0, int((observed_at - first_failure).total_seconds())),
                    downtime_minutes=TimeHelper.minutes_between(first_failure, observed_at),
                )
            self.reset()

        self.last_status = status
        return event

    def observe_record(self, endpoint: Endpoint, record: CheckRecord) -> Optional[AlertEvent]:
        return self.observe(
            endpoint,
            record.status,
            record.checked_at,
            http_code=record.http_code,
            error_message=record.error_message,
        )

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.first_failure_at = None
        self.alert_sent = False

    def rehydrate(self, recent: Sequence[CheckRecord]) -> None:
        """
        Seed the streak from stored records, newest first.

        A seeded streak already at or above the threshold counts as
        alerted, so a restart never repeats a downtime alert; the
        matching recovery alert still fires.
        """
        self.reset()
        self.last_status = recent[0].status if recent else None

        for record in recent:
            if record.status != CheckStatus.DOWN:
                break
            self.consecutive_failures += 1
            self.first_failure_at = record.checked_at

        self.alert_sent = self.consecutive_failures >= self.threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "consecutive_failures": self.consecutive_failures,
            "first_failure_at": isoformat_utc(self.first_failure_at) if self.first_failure_at else None,
            "alert_sent": self.alert_sent,
            "last_status": self.last_status.value if self.last_status else None,
        }


# ============================================================================
# TRACKER REGISTRY (BOUNDED CACHE)
# ============================================================================

class TrackerRegistry:
    """
    Bounded LRU map of endpoint id → DowntimeTracker.

    Mutated only by the check cycle runner. Evicting a tracker loses its
    streak, exactly like a process restart would.
    """

    def __init__(self, threshold: int, capacity: int = 10_000):
        self.threshold = threshold
        self.capacity = capacity
        self._trackers: "OrderedDict[uuid.UUID, DowntimeTracker]" = OrderedDict()
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._trackers)

    def __contains__(self, endpoint_id: uuid.UUID) -> bool:
        return endpoint_id in self._trackers

    def get(self, endpoint_id: uuid.UUID) -> Optional[DowntimeTracker]:
        return self._trackers.get(endpoint_id)

    def get_or_create(self, endpoint_id: uuid.UUID) -> Tuple[DowntimeTracker, bool]:
        """Return the endpoint's tracker and whether it was just created."""
        tracker = self._trackers.get(endpoint_id)
        if tracker is not None:
            self._trackers.move_to_end(endpoint_id)
            return tracker, False

        tracker = DowntimeTracker(self.threshold)
        self._trackers[endpoint_id] = tracker

        while len(self._trackers) > self.capacity:
            evicted_id, _ = self._trackers.popitem(last=False)
            self.evictions += 1
            logger.warning(f"[Tracker] Capacity {self.capacity} reached, evicted {evicted_id}")

        return tracker, True

    def retain(self, endpoint_ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
        """Drop trackers of endpoints that are no longer registered."""
        keep = set(endpoint_ids)
        stale = [endpoint_id for endpoint_id in self._trackers if endpoint_id not in keep]
        for endpoint_id in stale:
            del self._trackers[endpoint_id]
        if stale:
            logger.debug(f"[Tracker] Dropped {len(stale)} tracker(s) for removed endpoints")
        return stale

    def discard(self, endpoint_id: uuid.UUID) -> None:
        self._trackers.pop(endpoint_id, None)
