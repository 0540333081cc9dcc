"""
============================================================================
UPTIME MONITOR - MONITORING PACKAGE
============================================================================
Runtime monitoring engine:
    • HTTPProber         — one GET per endpoint, classified UP / DOWN
    • DowntimeTracker    — consecutive-failure state machine per endpoint
    • CheckCycleRunner   — probe, persist, track and alert for every endpoint
    • AlertManager       — queue + chat-webhook delivery
    • Scheduler          — periodic check cycle and heartbeat jobs
    • Aggregator         — day detail, status rollup and range report

monitoring/
├── __init__.py          ← this file
├── prober.py            ← HTTPProber + transport error classification
├── tracker.py           ← DowntimeTracker + TrackerRegistry + alert events
├── runner.py            ← CheckCycleRunner + CycleSummary
├── alerts.py            ← AlertFormatter + WebhookAlertSink + AlertManager
├── scheduler.py         ← Scheduler + built-in periodic jobs
└── aggregator.py        ← Aggregator + pure aggregation functions
============================================================================
"""

from monitoring.prober import HTTPProber, ProbeResult, classify_transport_error
from monitoring.tracker import (
    AlertEvent,
    DowntimeEvent,
    DowntimeTracker,
    RecoveryEvent,
    TrackerRegistry,
)
from monitoring.runner import CheckCycleRunner, CycleSummary
from monitoring.alerts import AlertFormatter, AlertManager, AlertPayload, WebhookAlertSink
from monitoring.scheduler import ScheduledJob, Scheduler
from monitoring.aggregator import Aggregator, DayDetail, RangeReport, StatusRollup

__all__ = [
    # Probing
    "HTTPProber",
    "ProbeResult",
    "classify_transport_error",

    # Downtime tracking
    "AlertEvent",
    "DowntimeEvent",
    "DowntimeTracker",
    "RecoveryEvent",
    "TrackerRegistry",

    # Check cycles
    "CheckCycleRunner",
    "CycleSummary",

    # Alerts
    "AlertFormatter",
    "AlertManager",
    "AlertPayload",
    "WebhookAlertSink",

    # Scheduler
    "Scheduler",
    "ScheduledJob",

    # Aggregation
    "Aggregator",
    "DayDetail",
    "RangeReport",
    "StatusRollup",
]
