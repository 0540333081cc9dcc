"""
Monitoring Exception Classes for Uptime Monitor

Errors raised by the check cycle runner, the scheduler and the
alert pipeline. Probe failures are never raised: they are recorded
as DOWN check records.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import UptimeMonitorException


class MonitoringException(UptimeMonitorException):
    """
    Base Monitoring Exception

    Parent class for errors in the monitoring engine.
    """

    default_error_code = 4000


class CycleInProgressError(MonitoringException):
    """
    Cycle In Progress Error

    Raised when a check cycle is requested while another one is
    still running. Cycles never overlap.
    """

    default_error_code = 4001
    http_status = 409

    def __init__(
        self,
        message: str = "A check cycle is already in progress",
        started_at: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if started_at:
            self.details["started_at"] = started_at


class SchedulerError(MonitoringException):
    """
    Scheduler Error

    Raised for invalid scheduler operations such as registering a
    job twice.
    """

    default_error_code = 4002

    def __init__(
        self,
        message: str,
        job_name: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if job_name:
            self.details["job_name"] = job_name


class AlertDeliveryError(MonitoringException):
    """
    Alert Delivery Error

    Describes a failed webhook delivery. Sinks log it and report
    failure instead of raising it into the check cycle.
    """

    default_error_code = 4003

    def __init__(
        self,
        message: str = "Alert delivery failed",
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if status_code is not None:
            self.details["status_code"] = status_code
