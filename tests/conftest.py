"""
Pytest configuration and shared fixtures for the uptime monitor tests.

Every database fixture runs against a fresh in-memory SQLite database,
so tests never touch ``data/`` or each other's rows.
"""

from datetime import datetime

import pytest
import pytest_asyncio

from config.constants import CheckStatus
from config.settings import (
    AlertSettings,
    DatabaseSettings,
    Environment,
    MonitoringSettings,
    ReportingSettings,
    SecuritySettings,
    Settings,
)
from database.connection import DatabaseManager
from database.models import CheckRecord
from database.repositories import CheckRepository, EndpointRepository


IN_MEMORY_DSN = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "test-cron-secret"


@pytest.fixture
def monitoring_settings():
    """Monitoring settings with a threshold of 3 and no tracker rehydration."""
    return MonitoringSettings(
        alert_threshold=3,
        max_concurrent_probes=4,
        request_timeout=5.0,
        rehydrate_trackers=False,
        check_interval=30.0,
        scheduler_tick=0.01,
    )


@pytest.fixture
def reporting_settings():
    return ReportingSettings(timezone="+05:30", default_days=90, max_days=366)


@pytest.fixture
def settings(monitoring_settings, reporting_settings):
    """Full settings in the testing environment (no file logging)."""
    return Settings(
        environment=Environment.TESTING,
        database=DatabaseSettings(dsn=IN_MEMORY_DSN),
        monitoring=monitoring_settings,
        alerts=AlertSettings(webhook_url="https://chat.example.com/hooks/T000/B000"),
        reporting=reporting_settings,
        security=SecuritySettings(cron_secret=TEST_SECRET),
    )


@pytest_asyncio.fixture
async def db_manager():
    """Initialized DatabaseManager on a private in-memory database."""
    manager = DatabaseManager(DatabaseSettings(dsn=IN_MEMORY_DSN))
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def endpoint_repo(db_manager):
    return EndpointRepository(db_manager)


@pytest.fixture
def check_repo(db_manager):
    return CheckRepository(db_manager)


@pytest.fixture
def make_record():
    """
    Factory for unsaved CheckRecords.

    ``make_record(endpoint_id, "DOWN", at, http_code=503)``
    """
    def _make(endpoint_id, status, at: datetime, **kwargs):
        return CheckRecord(
            endpoint_id=endpoint_id,
            status=CheckStatus(status),
            checked_at=at,
            response_time=kwargs.pop("response_time", 120),
            **kwargs,
        )
    return _make

