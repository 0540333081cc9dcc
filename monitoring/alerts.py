"""
============================================================================
UPTIME MONITOR - ALERTS
============================================================================
Turns downtime / recovery events into chat messages and delivers them to
an incoming chat webhook.

Design
------
AlertFormatter    renders events into text (timestamps shown in the
                  fixed reporting timezone)
WebhookAlertSink  POSTs {"text": ...} to the configured webhook with httpx
AlertManager      owns an asyncio.Queue. The check cycle runner calls
                  ``enqueue()``, which never blocks; a dispatch loop pulls
                  payloads off the queue and hands them to the sink.

Delivery
--------
Exactly one attempt per event. Failures (no webhook configured, non-2xx
answer, network error) are logged and counted, never retried and never
fed back into the downtime tracker.
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, Optional

import httpx

from config.constants import Defaults
from config.settings import AlertSettings, get_settings
from exceptions import AlertDeliveryError
from monitoring.tracker import AlertEvent, DowntimeEvent, RecoveryEvent
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.timezone import timezone_label, to_local


logger = get_logger("AlertManager")


# ============================================================================
# ALERT FORMATTER
# ============================================================================

def _minutes(n: int) -> str:
    return f"{n} minute" if n == 1 else f"{n} minutes"


class AlertFormatter:
    """
    Renders alert events as chat-webhook markdown.
    """

    def __init__(self, tz: timezone):
        self.tz = tz
        self.tz_label = timezone_label(tz)

    def _timestamp(self, value) -> str:
        local = to_local(value, self.tz)
        return f"{local.strftime(Defaults.ALERT_TIME_FORMAT)} ({self.tz_label})"

    def format_downtime(self, event: DowntimeEvent) -> str:
        lines = [
            "🚨 *ALERT: Service Down*",
            "",
            f"*Service:* {event.endpoint_name}",
            f"*URL:* {event.endpoint_url}",
            f"*Status:* DOWN for {_minutes(event.downtime_minutes)}",
            f"*Started:* {self._timestamp(event.first_failure_at)}",
        ]
        if event.http_code is not None:
            lines.append(f"*Status Code:* {event.http_code}")
        lines.append(f"*Error:* {event.error_message or Defaults.ALERT_ERROR}")
        lines.extend([
            "",
            f"_This service has been continuously down for {_minutes(event.downtime_minutes)}._",
        ])
        return "\n".join(lines)

    def format_recovery(self, event: RecoveryEvent) -> str:
        return "\n".join([
            "✅ *Service Recovered*",
            "",
            f"*Service:* {event.endpoint_name}",
            f"*URL:* {event.endpoint_url}",
            "*Status:* BACK ONLINE",
            f"*Recovered at:* {self._timestamp(event.recovered_at)}",
            f"*Total downtime:* {TimeHelper.seconds_to_human_readable(event.downtime_seconds)}",
        ])

    def format(self, event: AlertEvent) -> str:
        if isinstance(event, DowntimeEvent):
            return self.format_downtime(event)
        return self.format_recovery(event)


# ============================================================================
# WEBHOOK SINK
# ============================================================================

class WebhookAlertSink:
    """
    Delivers text to a chat webhook as ``{"text": text}``.

    ``deliver`` reports success as a bool and never raises.
    """

    def __init__(
        self,
        settings: Optional[AlertSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().alerts
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.webhook_url)

    async def deliver(self, text: str) -> bool:
        if not self.is_configured:
            logger.error("[Alerts] No alert webhook URL configured, message not sent")
            return False

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(self.settings.webhook_url, json={"text": text})

            if response.is_success:
                logger.debug(f"[Alerts] Webhook accepted message ({response.status_code})")
                return True

            error = AlertDeliveryError(
                f"Webhook answered {response.status_code}",
                status_code=response.status_code,
            )
            logger.error(f"[Alerts] {error.log_format()}")
            return False

        except httpx.HTTPError as e:
            error = AlertDeliveryError(f"Webhook request failed: {e}", cause=e)
            logger.error(f"[Alerts] {error.log_format()}")
            return False


# ============================================================================
# ALERT PAYLOAD (internal queue item)
# ============================================================================

@dataclass
class AlertPayload:
    """
    Lightweight payload that travels through the internal queue.
    The text is rendered at enqueue time.
    """
    kind: str
    endpoint_name: str
    text: str
    enqueued_at: float = field(default_factory=time.time)


# ============================================================================
# ALERT MANAGER
# ============================================================================

class AlertManager:
    """
    Central hub for alert dispatch.

    Parameters
    ----------
    sink : WebhookAlertSink
        Where rendered messages go.
    formatter : AlertFormatter
        Renders events into text.
    settings : AlertSettings | None
        Queue sizing.
    """

    def __init__(
        self,
        sink: WebhookAlertSink,
        formatter: AlertFormatter,
        settings: Optional[AlertSettings] = None,
    ):
        self.settings = settings or get_settings().alerts
        self.sink = sink
        self.formatter = formatter

        # --- internal queue ---
        self._queue: "asyncio.Queue[AlertPayload]" = asyncio.Queue(maxsize=self.settings.queue_size)

        # --- counters ---
        self._enqueued = 0
        self._delivered = 0
        self._failed = 0
        self._dropped = 0

        # --- lifecycle ---
        self._running = False
        self._dispatch_task: Optional[asyncio.Task] = None

        logger.info(
            f"AlertManager created — webhook_configured={sink.is_configured}, "
            f"queue_size={self.settings.queue_size}"
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if self._running:
            logger.warning("AlertManager is already running")
            return
        self._running = True
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        logger.info("✓ AlertManager started — dispatch loop active")

    async def stop(self) -> None:
        """
        Stop the dispatch loop, letting an in-flight delivery finish, then
        make the single delivery attempt for anything still queued.
        """
        self._running = False
        if self._dispatch_task:
            await self._dispatch_task
            self._dispatch_task = None

        drained = 0
        while not self._queue.empty():
            payload = self._queue.get_nowait()
            await self._deliver(payload)
            self._queue.task_done()
            drained += 1
        if drained:
            logger.info(f"[AlertManager] Delivered {drained} remaining alert(s) on shutdown")
        logger.info("✓ AlertManager stopped")

    def enqueue(self, event: AlertEvent) -> bool:
        """
        Non-blocking enqueue of an alert event.

        Returns
        -------
        bool
            True if the alert was enqueued, False if the queue is full.
        """
        payload = AlertPayload(
            kind=event.kind,
            endpoint_name=event.endpoint_name,
            text=self.formatter.format(event),
        )

        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                f"[AlertManager] Alert queue is full ({self._queue.maxsize}). "
                f"Dropping {event.kind} alert for {event.endpoint_name}"
            )
            return False

        self._enqueued += 1
        logger.debug(
            f"[AlertManager] Enqueued {event.kind} alert for "
            f"{event.endpoint_name}, queue_size={self._queue.qsize()}"
        )
        return True

    async def send_test_message(self, text: str) -> bool:
        """Deliver an operator-supplied message immediately, bypassing the queue."""
        logger.info("[AlertManager] Sending test message")
        return await self._deliver(AlertPayload(kind="test", endpoint_name="-", text=text))

    # ------------------------------------------------------------------
    # DISPATCH LOOP
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        """
        Pull alerts off the queue one at a time and deliver them.
        Runs until self._running is False.
        """
        logger.info("[AlertManager] Dispatch loop started")
        while self._running:
            try:
                payload = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue

            try:
                await self._deliver(payload)
            finally:
                self._queue.task_done()
        logger.info("[AlertManager] Dispatch loop exited")

    async def _deliver(self, payload: AlertPayload) -> bool:
        try:
            success = await self.sink.deliver(payload.text)
        except Exception as e:
            logger.exception(f"[AlertManager] Sink raised while delivering {payload.kind} alert: {e}")
            success = False

        if success:
            self._delivered += 1
            logger.info(f"[AlertManager] ✓ {payload.kind} alert delivered for {payload.endpoint_name}")
        else:
            self._failed += 1
            logger.warning(f"[AlertManager] {payload.kind} alert for {payload.endpoint_name} not delivered")
        return success

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Return current state of the alert manager for diagnostics."""
        return {
            "queue_size": self._queue.qsize(),
            "enqueued": self._enqueued,
            "delivered": self._delivered,
            "failed": self._failed,
            "dropped": self._dropped,
            "is_running": self._running,
            "webhook_configured": self.sink.is_configured,
        }
