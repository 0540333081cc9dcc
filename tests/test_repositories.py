"""
Tests for the endpoint registry and the check store on in-memory SQLite.
"""

import uuid
from datetime import datetime, timedelta

import pytest

from config.constants import CheckStatus
from exceptions import DatabaseDuplicateError, DatabaseNotFoundError, InvalidURLError


T0 = datetime(2025, 3, 10, 8, 0, 0)


class TestEndpointRepository:
    """Registry CRUD and uniqueness."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, endpoint_repo):
        await endpoint_repo.create("Web", "https://web.example.com")
        await endpoint_repo.create("API", "https://api.example.com", category="api")

        endpoints = await endpoint_repo.list_endpoints()

        assert [e.name for e in endpoints] == ["API", "Web"]
        assert endpoints[0].category == "api"
        assert endpoints[1].category == "website"
        assert await endpoint_repo.count() == 2

    @pytest.mark.asyncio
    async def test_duplicate_name_or_url(self, endpoint_repo):
        await endpoint_repo.create("API", "https://api.example.com")

        with pytest.raises(DatabaseDuplicateError) as exc_info:
            await endpoint_repo.create("API", "https://other.example.com")
        assert exc_info.value.details["field"] == "name"

        with pytest.raises(DatabaseDuplicateError) as exc_info:
            await endpoint_repo.create("Other", "https://api.example.com")
        assert exc_info.value.details["field"] == "url"

    @pytest.mark.asyncio
    async def test_invalid_url_rejected(self, endpoint_repo):
        with pytest.raises(InvalidURLError):
            await endpoint_repo.create("API", "not a url")

    @pytest.mark.asyncio
    async def test_update(self, endpoint_repo):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")

        updated = await endpoint_repo.update(endpoint.id, name="Public API")

        assert updated.name == "Public API"
        assert updated.url == "https://api.example.com"

    @pytest.mark.asyncio
    async def test_get_or_raise_unknown(self, endpoint_repo):
        with pytest.raises(DatabaseNotFoundError):
            await endpoint_repo.get_or_raise(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_removes_records(self, endpoint_repo, check_repo, make_record):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        await check_repo.append(make_record(endpoint.id, "UP", T0))
        await check_repo.append(make_record(endpoint.id, "DOWN", T0 + timedelta(seconds=30)))

        await endpoint_repo.delete(endpoint.id)

        assert await endpoint_repo.get(endpoint.id) is None
        assert await check_repo.count(endpoint.id) == 0

        with pytest.raises(DatabaseNotFoundError):
            await endpoint_repo.delete(endpoint.id)


class TestCheckRepository:
    """Append-only store with ordered range reads."""

    @pytest.mark.asyncio
    async def test_query_is_half_open_and_ordered(self, endpoint_repo, check_repo, make_record):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        for offset in (60, 0, 30, 90):
            await check_repo.append(make_record(endpoint.id, "UP", T0 + timedelta(seconds=offset)))

        records = await check_repo.query(endpoint.id, T0, T0 + timedelta(seconds=90))

        assert [r.checked_at for r in records] == [
            T0,
            T0 + timedelta(seconds=30),
            T0 + timedelta(seconds=60),
        ]

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_insertion_order(self, endpoint_repo, check_repo, make_record):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        await check_repo.append(make_record(endpoint.id, "DOWN", T0))
        await check_repo.append(make_record(endpoint.id, "UP", T0))

        records = await check_repo.query(endpoint.id, T0, T0 + timedelta(seconds=1))

        assert [r.status for r in records] == [CheckStatus.DOWN, CheckStatus.UP]

    @pytest.mark.asyncio
    async def test_recent_and_latest(self, endpoint_repo, check_repo, make_record):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        other = await endpoint_repo.create("Web", "https://web.example.com")
        for i in range(5):
            await check_repo.append(make_record(endpoint.id, "UP", T0 + timedelta(seconds=30 * i)))
        await check_repo.append(make_record(other.id, "DOWN", T0 + timedelta(hours=1)))

        recent = await check_repo.recent(endpoint.id, limit=3)
        latest = await check_repo.latest(endpoint.id)

        assert [r.checked_at for r in recent] == [
            T0 + timedelta(seconds=120),
            T0 + timedelta(seconds=90),
            T0 + timedelta(seconds=60),
        ]
        assert latest.checked_at == T0 + timedelta(seconds=120)
        assert latest.status == CheckStatus.UP
        assert await check_repo.latest(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_record_fields_round_trip(self, endpoint_repo, check_repo, make_record):
        endpoint = await endpoint_repo.create("API", "https://api.example.com")
        await check_repo.append(make_record(
            endpoint.id, "DOWN", T0,
            http_code=503,
            response_time=None,
            error_message="HTTP 503: Service Unavailable",
        ))

        stored = (await check_repo.recent(endpoint.id, limit=1))[0]

        assert stored.http_code == 503
        assert stored.response_time is None
        assert stored.to_dict()["checked_at"] == "2025-03-10T08:00:00.000Z"
