"""
Tests for application wiring and the startup / shutdown sequence.

The API server's socket bind is patched out; everything else is real
and runs on the in-memory database.
"""

from unittest.mock import AsyncMock

import pytest

import main
from main import UptimeMonitorApplication


@pytest.fixture
def no_bind(monkeypatch):
    start = AsyncMock()
    monkeypatch.setattr(main.ApiServer, "start", start)
    return start


class TestApplicationLifecycle:
    """Composition root."""

    @pytest.mark.asyncio
    async def test_startup_wires_subsystems(self, settings, no_bind):
        settings.monitoring.autostart_scheduler = False
        app = UptimeMonitorApplication(settings)

        assert await app.startup() is True
        try:
            assert app.runner.alert_manager is app.alert_manager
            assert app.api_server.scheduler is app.scheduler
            assert app.scheduler.is_running is False
            no_bind.assert_awaited_once()

            summary = await app.runner.run_once()
            assert summary.total == 0
        finally:
            await app.shutdown()

        assert app.db_manager.is_initialized is False

    @pytest.mark.asyncio
    async def test_autostart_scheduler(self, settings, no_bind):
        settings.monitoring.autostart_scheduler = True
        settings.monitoring.check_interval = 3600
        app = UptimeMonitorApplication(settings)

        assert await app.startup() is True
        assert app.scheduler.is_running is True

        await app.shutdown()
        assert app.scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_request_shutdown_releases_run(self, settings):
        app = UptimeMonitorApplication(settings)
        app.request_shutdown()
        await app.run()

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_cycle_before_api(self, settings, no_bind, monkeypatch):
        settings.monitoring.autostart_scheduler = False
        app = UptimeMonitorApplication(settings)
        assert await app.startup() is True

        order = []
        monkeypatch.setattr(
            app.runner, "wait_until_idle", AsyncMock(side_effect=lambda: order.append("cycle"))
        )
        monkeypatch.setattr(
            app.api_server, "stop", AsyncMock(side_effect=lambda: order.append("api"))
        )

        await app.shutdown()

        assert order == ["cycle", "api"]
