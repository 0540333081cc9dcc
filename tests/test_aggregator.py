"""
Tests for the aggregation functions and the Aggregator service.

Records are built in memory for the pure functions; the service tests
use the in-memory database.
"""

import uuid
from datetime import date, datetime, timedelta

import pytest

from config.constants import UNKNOWN_STATUS, CheckStatus
from config.settings import ReportingSettings
from database.models import Endpoint
from exceptions import DatabaseNotFoundError, ValidationException
from monitoring.aggregator import (
    Aggregator,
    build_day_detail,
    daily_series,
    endpoint_series,
    find_incidents,
    hourly_buckets,
    incident_error,
)
from utils.timezone import day_window, parse_utc_offset


IST = parse_utc_offset("+05:30")
DAY = date(2025, 3, 10)
# Local midnight of DAY at +05:30 is 18:30 UTC the day before
DAY_START = datetime(2025, 3, 9, 18, 30)


@pytest.fixture
def endpoint():
    return Endpoint(id=uuid.uuid4(), name="API", url="https://api.example.com", category="api")


@pytest.fixture
def record(make_record, endpoint):
    """``record("DOWN", minutes_after_local_midnight, **fields)``"""
    def _record(status, minute, **kwargs):
        return make_record(endpoint.id, status, DAY_START + timedelta(minutes=minute), **kwargs)
    return _record


class TestHourlyBuckets:
    """Reporting-timezone hour grouping."""

    def test_half_hour_offset_boundaries(self, record):
        records = [record("UP", 0), record("UP", 59), record("UP", 60), record("UP", 23 * 60 + 59)]

        buckets = hourly_buckets(records, DAY_START)

        assert [b.hour for b in buckets] == [0, 1, 23]
        assert buckets[0].total == 2
        assert buckets[0].hour_start == DAY_START
        assert buckets[2].hour_start == datetime(2025, 3, 10, 17, 30)

    def test_empty_hours_are_omitted(self, record):
        buckets = hourly_buckets([record("UP", 5 * 60)], DAY_START)
        assert len(buckets) == 1
        assert buckets[0].hour == 5

    def test_bucket_stats(self, record):
        records = [
            record("UP", 0, response_time=100),
            record("DOWN", 1, response_time=None),
            record("UP", 2, response_time=201),
            record("UP", 3, response_time=200),
        ]
        bucket = hourly_buckets(records, DAY_START)[0]

        assert (bucket.total, bucket.up, bucket.down) == (4, 3, 1)
        assert bucket.uptime_percent == 75.0
        # (100 + 201 + 200) / 3 = 167
        assert bucket.avg_response_time == 167


class TestIncidents:
    """Incident extraction and durations."""

    def test_duration_until_next_up(self, record):
        records = [record("UP", 0), record("DOWN", 1), record("DOWN", 2), record("UP", 5)]
        records[3].checked_at += timedelta(seconds=30)

        incidents = find_incidents(records)

        assert len(incidents) == 2
        assert incidents[0].duration == "4m 30s"
        assert incidents[0].duration_ms == 270_000
        assert incidents[1].duration == "3m 30s"

    def test_last_record_down_is_ongoing(self, record):
        incidents = find_incidents([record("UP", 0), record("DOWN", 1), record("DOWN", 2)])

        assert incidents[0].duration == "~1m"
        assert incidents[0].duration_ms is None
        assert incidents[1].duration == "Ongoing"

    def test_each_outage_ends_at_its_own_recovery(self, record):
        records = [
            record("DOWN", 0), record("UP", 2),
            record("DOWN", 3), record("DOWN", 4), record("UP", 10),
            record("DOWN", 11),
        ]

        durations = [i.duration for i in find_incidents(records)]

        assert durations == ["2m 0s", "7m 0s", "6m 0s", "Ongoing"]

    def test_long_outage_day(self, record):
        records = [record("DOWN", 0) for _ in range(2880)] + [record("UP", 1)]

        incidents = find_incidents(records)

        assert len(incidents) == 2880
        assert {i.duration_ms for i in incidents} == {60_000}

    def test_under_a_minute(self, record):
        down = record("DOWN", 0)
        up = record("UP", 0)
        up.checked_at += timedelta(seconds=45)
        assert find_incidents([down, up])[0].duration == "45s"

    def test_all_up_has_no_incidents(self, record):
        assert find_incidents([record("UP", m) for m in range(5)]) == []

    def test_error_prefixed_with_http_code(self, record):
        assert incident_error(record("DOWN", 0, http_code=502, error_message="Bad Gateway")) == (
            "HTTP 502: Bad Gateway"
        )
        assert incident_error(record("DOWN", 0, http_code=503, error_message="HTTP 503: Service Unavailable")) == (
            "HTTP 503: Service Unavailable"
        )
        assert incident_error(record("DOWN", 0)) == "Service unavailable"
        assert incident_error(record("DOWN", 0, http_code=500)) == "HTTP 500: Service unavailable"


class TestDayDetail:
    """Assembled day view."""

    def test_no_records_is_explicit_no_data(self, endpoint):
        detail = build_day_detail(endpoint, DAY, IST, [])
        data = detail.to_dict()

        assert data["has_data"] is False
        assert data["message"] == "No monitoring data available for this day"
        assert data["date"] == "2025-03-10"
        assert data["date_label"] == "Monday, March 10, 2025"
        assert "summary" not in data

    def test_all_up_day(self, endpoint, record):
        records = [record("UP", m * 10, response_time=100 + m) for m in range(6)]
        data = build_day_detail(endpoint, DAY, IST, records).to_dict()

        assert data["has_data"] is True
        assert data["summary"]["uptime_percent"] == 100.0
        assert data["summary"]["min_response_time"] == 100
        assert data["summary"]["max_response_time"] == 105
        assert data["incidents"] == []
        assert data["timezone"] == "UTC+05:30"

    def test_timeline_uses_local_time(self, endpoint, record):
        detail = build_day_detail(endpoint, DAY, IST, [record("UP", 13 * 60 + 5)])
        assert detail.timeline[0]["time"] == "01:05:00 PM"
        assert detail.timeline[0]["timestamp"] == "2025-03-10T07:35:00.000Z"

    def test_null_response_times_give_null_stats(self, endpoint, record):
        records = [record("DOWN", 0, response_time=None), record("DOWN", 1, response_time=None)]
        summary = build_day_detail(endpoint, DAY, IST, records).summary

        assert summary.avg_response_time is None
        assert summary.min_response_time is None
        assert summary.uptime_percent == 0.0

    def test_to_dict_is_repeatable(self, endpoint, record):
        detail = build_day_detail(endpoint, DAY, IST, [record("UP", 0), record("DOWN", 1)])
        assert detail.to_dict() == detail.to_dict()


class TestDailySeries:
    """Per-day statistics over a window."""

    def test_days_split_at_local_midnight(self, make_record, endpoint):
        records = [
            # 23:59 local on the 9th
            make_record(endpoint.id, "UP", datetime(2025, 3, 9, 18, 29)),
            # 00:00 local on the 10th
            make_record(endpoint.id, "DOWN", datetime(2025, 3, 9, 18, 30), error_message="boom", http_code=500),
        ]
        series = daily_series(records, IST)

        assert [d.day for d in series] == [date(2025, 3, 9), date(2025, 3, 10)]
        assert series[1].first_error == "boom"
        assert series[1].first_error_code == 500
        assert series[0].first_error is None

    def test_window_uptime_is_not_mean_of_daily(self, make_record, endpoint):
        day_one = [make_record(endpoint.id, "UP", datetime(2025, 3, 1, 6, m)) for m in range(9)]
        day_one.append(make_record(endpoint.id, "DOWN", datetime(2025, 3, 1, 6, 10)))
        day_two = [make_record(endpoint.id, "UP", datetime(2025, 3, 2, 6, 0))]

        series = endpoint_series(endpoint, day_one + day_two, IST)

        assert [d.uptime_percent for d in series.daily] == [90.0, 100.0]
        # 10 / 11, not (90 + 100) / 2
        assert series.uptime_percent == 90.91
        assert series.total == 11

    def test_empty_window(self, endpoint):
        series = endpoint_series(endpoint, [], IST)
        assert series.daily == []
        assert series.uptime_percent is None
        assert series.average_response_time is None
        assert series.to_dict()["current_status"] == UNKNOWN_STATUS


class TestAggregatorService:
    """Queries against the check store."""

    @pytest.fixture
    def aggregator(self, endpoint_repo, check_repo):
        return Aggregator(endpoint_repo, check_repo, ReportingSettings(timezone="+05:30"))

    @pytest.mark.asyncio
    async def test_day_detail_unknown_endpoint(self, aggregator):
        with pytest.raises(DatabaseNotFoundError):
            await aggregator.day_detail(uuid.uuid4(), DAY)

    @pytest.mark.asyncio
    async def test_day_detail_without_records(self, aggregator, endpoint_repo):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        detail = await aggregator.day_detail(endpoint.id, DAY)
        assert detail.has_data is False

    @pytest.mark.asyncio
    async def test_day_detail_window_is_half_open(self, aggregator, endpoint_repo, check_repo, make_record):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        start, end = day_window(DAY, IST)
        for at in (start - timedelta(seconds=1), start, end - timedelta(seconds=1), end):
            await check_repo.append(make_record(endpoint.id, "UP", at))

        detail = await aggregator.day_detail(endpoint.id, DAY)

        assert detail.summary.total == 2
        assert detail.summary.first_check == start

    @pytest.mark.asyncio
    async def test_status_rollup(self, aggregator, endpoint_repo, check_repo, make_record):
        checked = await endpoint_repo.create("API", "https://api.example.com")
        await endpoint_repo.create("Docs", "https://docs.example.com")
        await check_repo.append(make_record(checked.id, "DOWN", datetime(2025, 3, 10, 6, 0)))

        rollup = await aggregator.status_rollup(end_date=DAY, days=7)
        data = rollup.to_dict()

        assert data["date_range"] == {
            "start": "2025-03-04",
            "end": "2025-03-10",
            "days": 7,
            "timezone": "UTC+05:30",
        }
        by_name = {s["name"]: s for s in data["services"]}
        assert by_name["API"]["current_status"] == CheckStatus.DOWN.value
        assert by_name["API"]["daily"][0]["date"] == "2025-03-10"
        assert by_name["Docs"]["current_status"] == UNKNOWN_STATUS
        assert by_name["Docs"]["daily"] == []
        assert data["all_operational"] is False

    @pytest.mark.asyncio
    async def test_status_rollup_rejects_too_many_days(self, aggregator):
        with pytest.raises(ValidationException):
            await aggregator.status_rollup(end_date=DAY, days=400)

    @pytest.mark.asyncio
    async def test_range_report_reversed(self, aggregator):
        with pytest.raises(ValidationException):
            await aggregator.range_report(date(2025, 3, 10), date(2025, 3, 1))

    @pytest.mark.asyncio
    async def test_range_report_without_endpoints(self, aggregator):
        with pytest.raises(DatabaseNotFoundError):
            await aggregator.range_report(date(2025, 3, 1), date(2025, 3, 10))

    @pytest.mark.asyncio
    async def test_range_report_totals(self, aggregator, endpoint_repo, check_repo, make_record):
        api = await endpoint_repo.create("API", "https://api.example.com")
        web = await endpoint_repo.create("Web", "https://web.example.com")
        await check_repo.append(make_record(api.id, "UP", datetime(2025, 3, 2, 6, 0)))
        await check_repo.append(make_record(api.id, "DOWN", datetime(2025, 3, 3, 6, 0)))
        await check_repo.append(make_record(web.id, "UP", datetime(2025, 3, 3, 6, 0)))

        report = await aggregator.range_report(date(2025, 3, 1), date(2025, 3, 10))
        data = report.to_dict()

        assert data["period"]["start"] == "2025-03-01"
        assert data["totals"]["total_checks"] == 3
        assert data["totals"]["uptime_percent"] == 66.67
        assert [e["name"] for e in data["endpoints"]] == ["API", "Web"]

        single = await aggregator.range_report(date(2025, 3, 1), date(2025, 3, 10), endpoint_id=web.id)
        assert len(single.endpoints) == 1
        assert single.uptime_percent == 100.0
