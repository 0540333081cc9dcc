"""
============================================================================
UPTIME MONITOR - AGGREGATOR
============================================================================
Read-only views over the check store.

    day_detail     one endpoint, one calendar day: summary, sparse hourly
                   buckets, incidents with recovery durations, timeline
    status_rollup  every endpoint over the last N calendar days: current
                   status plus a daily series
    range_report   the same daily series for an explicit date range,
                   with per-endpoint and overall totals

Calendar days and hours are always those of the fixed reporting timezone.
Records are fetched for the UTC window of the requested days and grouped
with pure functions, so the same records always yield the same result.

Uptime over several days is sum(up) / sum(total), never the mean of the
daily percentages. A window without records yields an explicit "no data"
result, never 0 % uptime.
============================================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from config.constants import UNKNOWN_STATUS, CheckStatus, Defaults
from config.settings import ReportingSettings, get_settings
from database.models import CheckRecord, Endpoint
from database.repositories import CheckRepository, EndpointRepository
from exceptions import DatabaseNotFoundError, ValidationException
from utils.helpers import TimeHelper, mean, percentage, round_half_up
from utils.logger import get_logger
from utils.timezone import (
    day_window,
    isoformat_utc,
    local_date,
    parse_utc_offset,
    range_window,
    timezone_label,
    to_local,
    today,
)


logger = get_logger("Aggregator")

HOUR = timedelta(hours=1)


def _avg_ms(values) -> Optional[int]:
    value = mean(values)
    return round_half_up(value) if value is not None else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return isoformat_utc(value) if value is not None else None


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass
class DaySummary:
    total: int
    up: int
    down: int
    uptime_percent: float
    avg_response_time: Optional[int]
    min_response_time: Optional[int]
    max_response_time: Optional[int]
    first_check: datetime
    last_check: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_checks": self.total,
            "up_checks": self.up,
            "down_checks": self.down,
            "uptime_percent": self.uptime_percent,
            "avg_response_time": self.avg_response_time,
            "min_response_time": self.min_response_time,
            "max_response_time": self.max_response_time,
            "first_check": isoformat_utc(self.first_check),
            "last_check": isoformat_utc(self.last_check),
        }


@dataclass
class HourlyBucket:
    hour: int
    hour_start: datetime
    total: int
    up: int
    down: int
    uptime_percent: Optional[float]
    avg_response_time: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hour": self.hour,
            "hour_start": isoformat_utc(self.hour_start),
            "total_checks": self.total,
            "up_checks": self.up,
            "down_checks": self.down,
            "uptime_percent": self.uptime_percent,
            "avg_response_time": self.avg_response_time,
        }


@dataclass
class Incident:
    timestamp: datetime
    error: str
    http_code: Optional[int]
    response_time: Optional[int]
    duration_ms: Optional[int]
    duration: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": isoformat_utc(self.timestamp),
            "error": self.error,
            "http_code": self.http_code,
            "response_time": self.response_time,
            "duration_ms": self.duration_ms,
            "duration": self.duration,
        }


@dataclass
class DayDetail:
    """Day-detail view of one endpoint. ``has_data`` is False for an empty day."""
    endpoint: Endpoint
    day: date
    timezone: str
    has_data: bool
    summary: Optional[DaySummary] = None
    hourly: List[HourlyBucket] = field(default_factory=list)
    incidents: List[Incident] = field(default_factory=list)
    timeline: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def date_label(self) -> str:
        return self.day.strftime(Defaults.DATE_LABEL_FORMAT)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "has_data": self.has_data,
            "endpoint": {
                "id": str(self.endpoint.id),
                "name": self.endpoint.name,
                "url": self.endpoint.url,
            },
            "date": self.day.strftime(Defaults.DATE_FORMAT),
            "date_label": self.date_label,
            "timezone": self.timezone,
        }
        if not self.has_data:
            data["message"] = Defaults.NO_DATA_MESSAGE
            return data

        data.update({
            "summary": self.summary.to_dict(),
            "hourly": [bucket.to_dict() for bucket in self.hourly],
            "incidents": [incident.to_dict() for incident in self.incidents],
            "timeline": self.timeline,
        })
        return data


@dataclass
class DailyStats:
    day: date
    total: int
    up: int
    down: int
    avg_response_time: Optional[int]
    first_error: Optional[str]
    first_error_code: Optional[int]

    @property
    def uptime_percent(self) -> Optional[float]:
        return percentage(self.up, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.strftime(Defaults.DATE_FORMAT),
            "total_checks": self.total,
            "up_checks": self.up,
            "down_checks": self.down,
            "uptime_percent": self.uptime_percent,
            "avg_response_time": self.avg_response_time,
            "first_error": self.first_error,
            "first_error_code": self.first_error_code,
        }


@dataclass
class EndpointSeries:
    """Daily series of one endpoint over a window, plus window totals."""
    endpoint: Endpoint
    daily: List[DailyStats]
    average_response_time: Optional[int]
    current_status: str = UNKNOWN_STATUS
    last_checked: Optional[datetime] = None

    @property
    def total(self) -> int:
        return sum(day.total for day in self.daily)

    @property
    def up(self) -> int:
        return sum(day.up for day in self.daily)

    @property
    def down(self) -> int:
        return sum(day.down for day in self.daily)

    @property
    def uptime_percent(self) -> Optional[float]:
        return percentage(self.up, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.endpoint.id),
            "name": self.endpoint.name,
            "url": self.endpoint.url,
            "category": self.endpoint.category,
            "current_status": self.current_status,
            "last_checked": _iso(self.last_checked),
            "total_checks": self.total,
            "up_checks": self.up,
            "down_checks": self.down,
            "uptime_percent": self.uptime_percent,
            "average_response_time": self.average_response_time,
            "daily": [day.to_dict() for day in self.daily],
        }


@dataclass
class StatusRollup:
    services: List[EndpointSeries]
    start_date: date
    end_date: date
    days: int
    timezone: str

    @property
    def all_operational(self) -> bool:
        return all(s.current_status == CheckStatus.UP.value for s in self.services)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "all_operational": self.all_operational,
            "services": [s.to_dict() for s in self.services],
            "date_range": {
                "start": self.start_date.strftime(Defaults.DATE_FORMAT),
                "end": self.end_date.strftime(Defaults.DATE_FORMAT),
                "days": self.days,
                "timezone": self.timezone,
            },
        }


@dataclass
class RangeReport:
    endpoints: List[EndpointSeries]
    start_date: date
    end_date: date
    timezone: str
    generated_at: datetime = field(default_factory=TimeHelper.get_utc_now)

    @property
    def total(self) -> int:
        return sum(e.total for e in self.endpoints)

    @property
    def up(self) -> int:
        return sum(e.up for e in self.endpoints)

    @property
    def down(self) -> int:
        return sum(e.down for e in self.endpoints)

    @property
    def uptime_percent(self) -> Optional[float]:
        return percentage(self.up, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": {
                "start": self.start_date.strftime(Defaults.DATE_FORMAT),
                "end": self.end_date.strftime(Defaults.DATE_FORMAT),
                "timezone": self.timezone,
            },
            "generated_at": isoformat_utc(self.generated_at),
            "totals": {
                "total_checks": self.total,
                "up_checks": self.up,
                "down_checks": self.down,
                "uptime_percent": self.uptime_percent,
            },
            "endpoints": [e.to_dict() for e in self.endpoints],
        }


# ============================================================================
# PURE AGGREGATION FUNCTIONS
# ============================================================================

def summarize(records: Sequence[CheckRecord]) -> DaySummary:
    """Counts and response-time stats of a non-empty, time-ordered list."""
    up = sum(1 for r in records if r.is_up)
    times = [r.response_time for r in records if r.response_time is not None]
    return DaySummary(
        total=len(records),
        up=up,
        down=len(records) - up,
        uptime_percent=percentage(up, len(records)),
        avg_response_time=_avg_ms(times),
        min_response_time=min(times) if times else None,
        max_response_time=max(times) if times else None,
        first_check=records[0].checked_at,
        last_check=records[-1].checked_at,
    )


def hourly_buckets(records: Sequence[CheckRecord], day_start: datetime) -> List[HourlyBucket]:
    """
    Group a day's records into reporting-timezone hours.

    ``day_start`` is the UTC instant of local midnight; with a fixed offset
    the local hour of a record is simply its whole-hour distance from it.
    Hours without records are left out.
    """
    grouped: Dict[int, List[CheckRecord]] = {}
    for record in records:
        hour = int((record.checked_at - day_start) // HOUR)
        if 0 <= hour < 24:
            grouped.setdefault(hour, []).append(record)

    buckets = []
    for hour in sorted(grouped):
        items = grouped[hour]
        up = sum(1 for r in items if r.is_up)
        buckets.append(HourlyBucket(
            hour=hour,
            hour_start=day_start + hour * HOUR,
            total=len(items),
            up=up,
            down=len(items) - up,
            uptime_percent=percentage(up, len(items)),
            avg_response_time=_avg_ms(r.response_time for r in items),
        ))
    return buckets


def incident_error(record: CheckRecord) -> str:
    error = record.error_message or Defaults.INCIDENT_ERROR
    if record.http_code is not None and not error.startswith("HTTP"):
        error = f"HTTP {record.http_code}: {error}"
    return error


def find_incidents(records: Sequence[CheckRecord]) -> List[Incident]:
    """
    One incident per DOWN record, timed until the next UP record.

    Without a later UP in the window the duration is "Ongoing" for the
    window's last record and "~1m" for any other.
    """
    incidents = []
    last_index = len(records) - 1

    # Nearest later UP for every position, filled in one reverse pass
    next_up: List[Optional[CheckRecord]] = [None] * len(records)
    following: Optional[CheckRecord] = None
    for index in range(last_index, -1, -1):
        next_up[index] = following
        if records[index].is_up:
            following = records[index]

    for index, record in enumerate(records):
        if record.is_up:
            continue

        recovery = next_up[index]
        if recovery is not None:
            duration_ms = int((recovery.checked_at - record.checked_at).total_seconds() * 1000)
            duration = TimeHelper.format_incident_duration(duration_ms)
        else:
            duration_ms = None
            duration = Defaults.ONGOING if index == last_index else Defaults.UNKNOWN_DURATION

        incidents.append(Incident(
            timestamp=record.checked_at,
            error=incident_error(record),
            http_code=record.http_code,
            response_time=record.response_time,
            duration_ms=duration_ms,
            duration=duration,
        ))
    return incidents


def build_timeline(records: Sequence[CheckRecord], tz: timezone) -> List[Dict[str, Any]]:
    return [
        {
            "time": to_local(r.checked_at, tz).strftime("%I:%M:%S %p"),
            "status": r.status.value,
            "response_time": r.response_time,
            "timestamp": isoformat_utc(r.checked_at),
        }
        for r in records
    ]


def build_day_detail(
    endpoint: Endpoint,
    day: date,
    tz: timezone,
    records: Sequence[CheckRecord],
) -> DayDetail:
    """Assemble the day-detail view from the records of that day's window."""
    if not records:
        return DayDetail(endpoint=endpoint, day=day, timezone=timezone_label(tz), has_data=False)

    day_start, _ = day_window(day, tz)
    return DayDetail(
        endpoint=endpoint,
        day=day,
        timezone=timezone_label(tz),
        has_data=True,
        summary=summarize(records),
        hourly=hourly_buckets(records, day_start),
        incidents=find_incidents(records),
        timeline=build_timeline(records, tz),
    )


def daily_series(records: Sequence[CheckRecord], tz: timezone) -> List[DailyStats]:
    """
    Per reporting-timezone day statistics, ascending by day.

    Only days with at least one record appear. ``first_error`` is the
    message of the earliest DOWN record of the day that has one.
    """
    grouped: Dict[date, List[CheckRecord]] = {}
    for record in records:
        grouped.setdefault(local_date(record.checked_at, tz), []).append(record)

    series = []
    for day in sorted(grouped):
        items = grouped[day]
        up = sum(1 for r in items if r.is_up)
        first_error = next((r for r in items if not r.is_up and r.error_message), None)
        series.append(DailyStats(
            day=day,
            total=len(items),
            up=up,
            down=len(items) - up,
            avg_response_time=_avg_ms(r.response_time for r in items),
            first_error=first_error.error_message if first_error else None,
            first_error_code=first_error.http_code if first_error else None,
        ))
    return series


def endpoint_series(
    endpoint: Endpoint,
    records: Sequence[CheckRecord],
    tz: timezone,
) -> EndpointSeries:
    return EndpointSeries(
        endpoint=endpoint,
        daily=daily_series(records, tz),
        average_response_time=_avg_ms(r.response_time for r in records),
    )


# ============================================================================
# AGGREGATOR SERVICE
# ============================================================================

class Aggregator:
    """
    Query side of the monitor. Never writes.
    """

    def __init__(
        self,
        endpoints: EndpointRepository,
        checks: CheckRepository,
        settings: Optional[ReportingSettings] = None,
    ):
        self.settings = settings or get_settings().reporting
        self.endpoints = endpoints
        self.checks = checks
        self.tz = parse_utc_offset(self.settings.timezone)

    async def day_detail(
        self,
        endpoint_id,
        day: date,
        tz: Optional[timezone] = None,
    ) -> DayDetail:
        """
        Raises:
            DatabaseNotFoundError: If the endpoint does not exist
        """
        tz = tz or self.tz
        endpoint = await self.endpoints.get_or_raise(endpoint_id)

        start, end = day_window(day, tz)
        records = await self.checks.query(endpoint.id, start, end)
        logger.debug(
            f"[Aggregator] Day detail {endpoint.name} {day} ({timezone_label(tz)}): "
            f"{len(records)} record(s)"
        )
        return build_day_detail(endpoint, day, tz, records)

    async def status_rollup(
        self,
        end_date: Optional[date] = None,
        days: Optional[int] = None,
    ) -> StatusRollup:
        """
        Every endpoint's current status and daily series over the ``days``
        calendar days ending at ``end_date`` inclusive.
        """
        end_date = end_date or today(self.tz)
        days = self._check_days(days or self.settings.default_days)
        start_date = end_date - timedelta(days=days - 1)
        start, end = range_window(start_date, end_date, self.tz)

        services = []
        for endpoint in await self.endpoints.list_endpoints():
            records = await self.checks.query(endpoint.id, start, end)
            series = endpoint_series(endpoint, records, self.tz)

            latest = await self.checks.latest(endpoint.id)
            if latest is not None:
                series.current_status = latest.status.value
                series.last_checked = latest.checked_at
            services.append(series)

        return StatusRollup(
            services=services,
            start_date=start_date,
            end_date=end_date,
            days=days,
            timezone=timezone_label(self.tz),
        )

    async def range_report(
        self,
        start_date: date,
        end_date: date,
        endpoint_id=None,
    ) -> RangeReport:
        """
        Daily series for every endpoint (or one) from start_date to
        end_date inclusive.

        Raises:
            ValidationException: If the range is reversed or too long
            DatabaseNotFoundError: If the endpoint does not exist or there
                are no endpoints at all
        """
        if start_date > end_date:
            raise ValidationException(
                "startDate must not be after endDate",
                field="startDate",
                value=start_date.isoformat(),
            )
        self._check_days((end_date - start_date).days + 1)

        if endpoint_id is not None:
            endpoints = [await self.endpoints.get_or_raise(endpoint_id)]
        else:
            endpoints = await self.endpoints.list_endpoints()
        if not endpoints:
            raise DatabaseNotFoundError("No endpoints found", entity_type="Endpoint")

        start, end = range_window(start_date, end_date, self.tz)
        series = []
        for endpoint in endpoints:
            records = await self.checks.query(endpoint.id, start, end)
            series.append(endpoint_series(endpoint, records, self.tz))

        logger.info(
            f"[Aggregator] Report {start_date} → {end_date} for {len(series)} endpoint(s)"
        )
        return RangeReport(
            endpoints=series,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone_label(self.tz),
        )

    def _check_days(self, days: int) -> int:
        if days < 1 or days > self.settings.max_days:
            raise ValidationException(
                f"days must be between 1 and {self.settings.max_days}",
                field="days",
                value=days,
            )
        return days
