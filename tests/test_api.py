"""
Tests for the HTTP API server.

The aiohttp application runs on a TestServer; the runner, scheduler,
aggregator and alert manager are mocks.
"""

import uuid
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from config.constants import CheckStatus
from config.settings import SecuritySettings
from database.models import Endpoint
from exceptions import CycleInProgressError, DatabaseNotFoundError, DatabaseQueryError
from monitoring.aggregator import Aggregator, build_day_detail
from monitoring.alerts import AlertManager
from monitoring.prober import HTTPProber, ProbeResult
from monitoring.runner import CheckCycleRunner, CycleSummary
from monitoring.scheduler import Scheduler
from utils.timezone import parse_utc_offset
from api.server import ApiServer


TEST_SECRET = "test-cron-secret"
AUTH = {"Authorization": f"Bearer {TEST_SECRET}"}


@pytest.fixture
def cycle_runner():
    mock = MagicMock(spec=CheckCycleRunner)
    mock.run_once = AsyncMock(return_value=CycleSummary(started_at=datetime(2025, 3, 10, 8, 0)))
    mock.is_running = False
    mock.get_stats.return_value = {"is_running": False}
    return mock


@pytest.fixture
def scheduler():
    mock = MagicMock(spec=Scheduler)
    mock.start = AsyncMock(return_value=True)
    mock.stop = AsyncMock(return_value=True)
    mock.is_running = True
    mock.get_stats.return_value = {"is_running": True, "jobs": []}
    return mock


@pytest.fixture
def aggregator():
    return AsyncMock(spec=Aggregator)


@pytest.fixture
def alert_manager():
    mock = MagicMock(spec=AlertManager)
    mock.send_test_message = AsyncMock(return_value=True)
    mock.get_stats.return_value = {"queue_size": 0}
    return mock


@pytest.fixture
def api(cycle_runner, scheduler, aggregator, alert_manager, settings):
    return ApiServer(cycle_runner, scheduler, aggregator, alert_manager, settings)


@pytest_asyncio.fixture
async def client(api):
    async with TestClient(TestServer(api.app)) as client:
        yield client


class TestHealth:
    """GET /health"""

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status == 200

        data = await resp.json()
        assert data["status"] == "healthy"
        assert data["scheduler_running"] is True
        assert data["cycle_in_progress"] is False
        assert data["requests_served"] == 1


class TestCronTrigger:
    """GET|POST /api/cron/monitor"""

    @pytest.mark.asyncio
    async def test_bearer_token(self, client, cycle_runner):
        resp = await client.get("/api/cron/monitor", headers=AUTH)
        assert resp.status == 200

        data = await resp.json()
        assert data["success"] is True
        assert data["message"] == "No endpoints to monitor"
        cycle_runner.run_once.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_raw_token(self, client, cycle_runner):
        resp = await client.post("/api/cron/monitor", headers={"Authorization": TEST_SECRET})
        assert resp.status == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "Bearer "}])
    async def test_bad_secret_is_401(self, client, cycle_runner, headers):
        resp = await client.get("/api/cron/monitor", headers=headers)

        assert resp.status == 401
        assert await resp.json() == {"error": "Unauthorized"}
        cycle_runner.run_once.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_secret_is_500(self, cycle_runner, scheduler, aggregator, alert_manager, settings):
        settings.security = SecuritySettings(cron_secret=None)
        api = ApiServer(cycle_runner, scheduler, aggregator, alert_manager, settings)

        async with TestClient(TestServer(api.app)) as client:
            resp = await client.get("/api/cron/monitor", headers=AUTH)
            assert resp.status == 500
            assert await resp.json() == {"error": "Server configuration error"}

        cycle_runner.run_once.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cycle_in_progress_is_409(self, client, cycle_runner):
        cycle_runner.run_once.side_effect = CycleInProgressError()

        resp = await client.get("/api/cron/monitor", headers=AUTH)

        assert resp.status == 409
        assert await resp.json() == {"error": "A check cycle is already in progress"}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, client, cycle_runner):
        cycle_runner.run_once.side_effect = DatabaseQueryError("no such table: endpoints")

        resp = await client.get("/api/cron/monitor", headers=AUTH)

        assert resp.status == 500
        data = await resp.json()
        assert "no such table" not in data["error"]


class TestSchedulerControl:
    """Scheduler start / stop / status."""

    @pytest.mark.asyncio
    async def test_start(self, client, scheduler):
        resp = await client.post("/api/scheduler/start", headers=AUTH)
        data = await resp.json()

        assert resp.status == 200
        assert data["started"] is True
        assert data["message"] == "Scheduler started"

    @pytest.mark.asyncio
    async def test_start_when_running(self, client, scheduler):
        scheduler.start.return_value = False

        data = await (await client.post("/api/scheduler/start", headers=AUTH)).json()

        assert data["success"] is True
        assert data["message"] == "Scheduler already running"

    @pytest.mark.asyncio
    async def test_stop_requires_secret(self, client, scheduler):
        resp = await client.post("/api/scheduler/stop")
        assert resp.status == 401
        scheduler.stop.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_is_public(self, client):
        resp = await client.get("/api/scheduler")
        data = await resp.json()

        assert resp.status == 200
        assert data["scheduler"]["is_running"] is True
        assert data["runner"] == {"is_running": False}


class TestDayDetail:
    """GET /api/day-detail"""

    @pytest.mark.asyncio
    async def test_missing_date_is_400(self, client):
        resp = await client.get("/api/day-detail", params={"endpointId": str(uuid.uuid4())})

        assert resp.status == 400
        assert await resp.json() == {"error": "date is required"}

    @pytest.mark.asyncio
    async def test_missing_endpoint_is_400(self, client):
        resp = await client.get("/api/day-detail", params={"date": "2025-03-10"})
        assert resp.status == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("day", ["2025-02-30", "10-03-2025", "yesterday"])
    async def test_invalid_date_is_400(self, client, aggregator, day):
        resp = await client.get(
            "/api/day-detail",
            params={"endpointId": str(uuid.uuid4()), "date": day},
        )

        assert resp.status == 400
        assert "YYYY-MM-DD" in (await resp.json())["error"]
        aggregator.day_detail.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_timezone_is_400(self, client):
        resp = await client.get(
            "/api/day-detail",
            params={"endpointId": str(uuid.uuid4()), "date": "2025-03-10", "timezone": "Mars/Olympus"},
        )
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_unknown_endpoint_is_404(self, client, aggregator):
        aggregator.day_detail.side_effect = DatabaseNotFoundError("missing", entity_type="Endpoint")

        resp = await client.get(
            "/api/day-detail",
            params={"endpointId": str(uuid.uuid4()), "date": "2025-03-10"},
        )

        assert resp.status == 404
        assert await resp.json() == {"error": "Endpoint not found"}

    @pytest.mark.asyncio
    async def test_no_data_day(self, client, aggregator):
        endpoint = Endpoint(id=uuid.uuid4(), name="API", url="https://api.example.com")
        tz = parse_utc_offset("+05:30")
        aggregator.day_detail.return_value = build_day_detail(endpoint, date(2025, 3, 10), tz, [])

        resp = await client.get(
            "/api/day-detail",
            params={"endpointId": str(endpoint.id), "date": "2025-03-10", "timezone": "+05:30"},
        )
        data = await resp.json()

        assert resp.status == 200
        assert data["has_data"] is False
        assert data["endpoint"]["name"] == "API"

        args = aggregator.day_detail.await_args.args
        assert args[0] == endpoint.id
        assert args[1] == date(2025, 3, 10)
        assert args[2].utcoffset(None).total_seconds() == 19800


class TestStatusAndReport:
    """GET /api/status and /api/report"""

    @pytest.mark.asyncio
    async def test_status_defaults(self, client, aggregator):
        aggregator.status_rollup.return_value.to_dict = MagicMock(return_value={"all_operational": True})

        resp = await client.get("/api/status")

        assert resp.status == 200
        assert await resp.json() == {"all_operational": True}
        aggregator.status_rollup.assert_awaited_once_with(end_date=None, days=90)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", ["0", "367", "ninety"])
    async def test_status_rejects_bad_days(self, client, days):
        resp = await client.get("/api/status", params={"days": days})
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_report_requires_both_dates(self, client):
        resp = await client.get("/api/report", params={"startDate": "2025-03-01"})

        assert resp.status == 400
        assert await resp.json() == {"error": "endDate is required"}

    @pytest.mark.asyncio
    async def test_report(self, client, aggregator):
        aggregator.range_report.return_value.to_dict = MagicMock(return_value={"totals": {}})

        resp = await client.get("/api/report", params={"startDate": "2025-03-01", "endDate": "2025-03-10"})

        assert resp.status == 200
        aggregator.range_report.assert_awaited_once_with(date(2025, 3, 1), date(2025, 3, 10), None)


class TestAlertTest:
    """POST /api/alerts/test"""

    @pytest.mark.asyncio
    async def test_custom_message(self, client, alert_manager):
        resp = await client.post("/api/alerts/test", headers=AUTH, json={"message": "hello"})

        assert resp.status == 200
        alert_manager.send_test_message.assert_awaited_once_with("hello")

    @pytest.mark.asyncio
    async def test_default_message(self, client, alert_manager, settings):
        resp = await client.post("/api/alerts/test", headers=AUTH)

        assert resp.status == 200
        alert_manager.send_test_message.assert_awaited_once_with(f"🔔 Test alert from {settings.app_name}")

    @pytest.mark.asyncio
    async def test_delivery_failure_is_502(self, client, alert_manager):
        alert_manager.send_test_message.return_value = False

        resp = await client.post("/api/alerts/test", headers=AUTH, json={})

        assert resp.status == 502
        assert (await resp.json())["success"] is False

    @pytest.mark.asyncio
    async def test_invalid_json_is_400(self, client):
        resp = await client.post(
            "/api/alerts/test",
            headers={**AUTH, "Content-Type": "application/json"},
            data="{not json",
        )
        assert resp.status == 400


# ============================================================================
# ENDPOINT REGISTRY (in-memory database)
# ============================================================================

@pytest.fixture
def prober():
    mock = AsyncMock(spec=HTTPProber)
    mock.check.return_value = ProbeResult(status=CheckStatus.UP, http_code=200, response_time=85)
    return mock


@pytest_asyncio.fixture
async def registry_client(endpoint_repo, check_repo, prober, scheduler, aggregator, alert_manager, settings):
    cycle_runner = CheckCycleRunner(endpoint_repo, check_repo, prober, alert_manager, settings.monitoring)
    api = ApiServer(cycle_runner, scheduler, aggregator, alert_manager, settings)
    async with TestClient(TestServer(api.app)) as client:
        yield client


async def register(client, name="API", url="https://api.example.com/health", category="api"):
    return await client.post(
        "/api/endpoints",
        headers=AUTH,
        json={"name": name, "url": url, "category": category},
    )


class TestEndpointRegistration:
    """POST /api/endpoints, GET /api/endpoints"""

    @pytest.mark.asyncio
    async def test_create_runs_initial_check(self, registry_client, check_repo, prober):
        resp = await register(registry_client)
        assert resp.status == 201

        data = await resp.json()
        assert data["success"] is True
        assert data["endpoint"]["name"] == "API"
        assert data["endpoint"]["category"] == "api"
        assert data["initial_check"]["status"] == "UP"
        assert data["initial_check"]["http_code"] == 200

        prober.check.assert_awaited_once_with("https://api.example.com/health")
        assert await check_repo.count(uuid.UUID(data["endpoint"]["id"])) == 1

        listing = await (await registry_client.get("/api/endpoints")).json()
        assert [e["name"] for e in listing["endpoints"]] == ["API"]

    @pytest.mark.asyncio
    async def test_category_defaults_to_website(self, registry_client):
        resp = await registry_client.post(
            "/api/endpoints",
            headers=AUTH,
            json={"name": "Docs", "url": "https://docs.example.com"},
        )
        assert resp.status == 201
        assert (await resp.json())["endpoint"]["category"] == "website"

    @pytest.mark.asyncio
    async def test_failed_initial_check_keeps_endpoint(self, registry_client, prober):
        prober.check.side_effect = RuntimeError("probe crashed")

        resp = await register(registry_client)
        assert resp.status == 201
        assert (await resp.json())["initial_check"] is None

        listing = await (await registry_client.get("/api/endpoints")).json()
        assert len(listing["endpoints"]) == 1

    @pytest.mark.asyncio
    async def test_create_requires_secret(self, registry_client, prober):
        resp = await registry_client.post(
            "/api/endpoints",
            json={"name": "API", "url": "https://api.example.com"},
        )
        assert resp.status == 401
        prober.check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_url_is_400(self, registry_client):
        resp = await register(registry_client, url="ftp://files.example.com")

        assert resp.status == 400
        assert await resp.json() == {"error": "URL must start with http:// or https://"}

    @pytest.mark.asyncio
    async def test_missing_name_is_400(self, registry_client):
        resp = await registry_client.post(
            "/api/endpoints",
            headers=AUTH,
            json={"url": "https://api.example.com"},
        )
        assert resp.status == 400
        assert await resp.json() == {"error": "name is required"}

    @pytest.mark.asyncio
    async def test_duplicate_name_is_409(self, registry_client):
        await register(registry_client)

        resp = await register(registry_client, url="https://other.example.com")

        assert resp.status == 409
        assert await resp.json() == {"error": "An endpoint with this name already exists"}

    @pytest.mark.asyncio
    async def test_duplicate_url_is_409(self, registry_client):
        await register(registry_client)

        resp = await register(registry_client, name="API mirror")

        assert resp.status == 409
        assert await resp.json() == {"error": "An endpoint with this url already exists"}

    @pytest.mark.asyncio
    async def test_non_object_body_is_400(self, registry_client):
        resp = await registry_client.post("/api/endpoints", headers=AUTH, json=["API"])
        assert resp.status == 400


class TestEndpointDetail:
    """GET|PATCH|DELETE /api/endpoints/{id}"""

    @pytest.mark.asyncio
    async def test_get_includes_latest_checks(self, registry_client):
        created = await (await register(registry_client)).json()
        endpoint_id = created["endpoint"]["id"]

        resp = await registry_client.get(f"/api/endpoints/{endpoint_id}")
        assert resp.status == 200

        data = await resp.json()
        assert data["endpoint"]["id"] == endpoint_id
        assert [c["status"] for c in data["checks"]] == ["UP"]

    @pytest.mark.asyncio
    async def test_unknown_id_is_404(self, registry_client):
        resp = await registry_client.get(f"/api/endpoints/{uuid.uuid4()}")

        assert resp.status == 404
        assert await resp.json() == {"error": "Endpoint not found"}

    @pytest.mark.asyncio
    async def test_malformed_id_is_400(self, registry_client):
        resp = await registry_client.get("/api/endpoints/not-a-uuid")
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_update_renames(self, registry_client):
        created = await (await register(registry_client)).json()
        endpoint_id = created["endpoint"]["id"]

        resp = await registry_client.patch(
            f"/api/endpoints/{endpoint_id}",
            headers=AUTH,
            json={"name": "Public API"},
        )
        assert resp.status == 200

        data = await resp.json()
        assert data["endpoint"]["name"] == "Public API"
        assert data["endpoint"]["url"] == "https://api.example.com/health"

    @pytest.mark.asyncio
    async def test_update_without_fields_is_400(self, registry_client):
        created = await (await register(registry_client)).json()

        resp = await registry_client.patch(
            f"/api/endpoints/{created['endpoint']['id']}",
            headers=AUTH,
            json={},
        )
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_update_into_taken_url_is_409(self, registry_client):
        await register(registry_client)
        other = await (await register(registry_client, name="Web", url="https://www.example.com")).json()

        resp = await registry_client.patch(
            f"/api/endpoints/{other['endpoint']['id']}",
            headers=AUTH,
            json={"url": "https://api.example.com/health"},
        )
        assert resp.status == 409

    @pytest.mark.asyncio
    async def test_delete_removes_checks(self, registry_client, check_repo):
        created = await (await register(registry_client)).json()
        endpoint_id = created["endpoint"]["id"]

        resp = await registry_client.delete(f"/api/endpoints/{endpoint_id}", headers=AUTH)
        assert resp.status == 200
        assert await resp.json() == {"success": True}

        assert (await registry_client.get(f"/api/endpoints/{endpoint_id}")).status == 404
        assert await check_repo.count(uuid.UUID(endpoint_id)) == 0

    @pytest.mark.asyncio
    async def test_delete_requires_secret(self, registry_client):
        created = await (await register(registry_client)).json()

        resp = await registry_client.delete(f"/api/endpoints/{created['endpoint']['id']}")

        assert resp.status == 401
