"""
Constants Module for Uptime Monitor

Contains the enumerations, status-code rules and default values
shared by the prober, the downtime tracker and the aggregator.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Final


class CheckStatus(str, Enum):
    """
    Check Result Status Enumeration

    Every stored check is either UP or DOWN. UNKNOWN only appears in
    status rollups for endpoints that have never been checked.
    """

    UP = "UP"
    DOWN = "DOWN"


UNKNOWN_STATUS: Final[str] = "UNKNOWN"


class ProbeErrorKind(str, Enum):
    """
    Transport Failure Classification

    Produced by the prober for every failure that never yielded an
    HTTP response. Each kind maps to exactly one display text.
    """

    TIMEOUT = "timeout"
    DNS_FAILURE = "dns_failure"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    TLS_ERROR = "tls_error"
    UNREACHABLE = "unreachable"
    HTTP_ERROR = "http_error"
    OTHER = "other"

    @classmethod
    def describe(cls, kind: "ProbeErrorKind", detail: str = "") -> str:
        """Human-readable error message for a failure kind."""
        if kind == cls.OTHER:
            return f"Request failed: {detail}" if detail else "Request failed"
        return ERROR_MESSAGES[kind]


ERROR_MESSAGES: Final[Dict[ProbeErrorKind, str]] = {
    ProbeErrorKind.TIMEOUT: "Request timed out - service not responding",
    ProbeErrorKind.DNS_FAILURE: "DNS lookup failed - domain not found",
    ProbeErrorKind.CONNECTION_REFUSED: "Connection refused - service not accepting connections",
    ProbeErrorKind.CONNECTION_RESET: "Connection reset by server",
    ProbeErrorKind.TLS_ERROR: "SSL/TLS certificate error",
    ProbeErrorKind.UNREACHABLE: "Network unreachable - cannot reach host",
    ProbeErrorKind.HTTP_ERROR: "Server returned an error status",
}


class StatusCodes:
    """
    HTTP Status Code Categories

    A monitored service is UP for any code in [200, 500). Client
    errors mean the service answered, so they are not downtime.
    """

    UP_RANGE_START: Final[int] = 200
    UP_RANGE_END: Final[int] = 500

    @classmethod
    def is_up(cls, code: int) -> bool:
        """Check if status code means the service is up."""
        return cls.UP_RANGE_START <= code < cls.UP_RANGE_END


class Defaults:
    """
    Default Values

    Display formats and fallback texts. Tunable values live in settings.
    """

    # Display
    DATE_FORMAT: Final[str] = "%Y-%m-%d"
    ALERT_TIME_FORMAT: Final[str] = "%b %d, %Y, %I:%M:%S %p"
    DATE_LABEL_FORMAT: Final[str] = "%A, %B %d, %Y"

    # Text fallbacks
    ALERT_ERROR: Final[str] = "Service unreachable"
    INCIDENT_ERROR: Final[str] = "Service unavailable"
    NO_DATA_MESSAGE: Final[str] = "No monitoring data available for this day"
    NO_ENDPOINTS_MESSAGE: Final[str] = "No endpoints to monitor"

    # Incident durations
    ONGOING: Final[str] = "Ongoing"
    UNKNOWN_DURATION: Final[str] = "~1m"


class Limits:
    """Application limits and constraints."""

    MAX_URL_LENGTH: Final[int] = 2048
    MAX_NAME_LENGTH: Final[int] = 100
    MAX_CATEGORY_LENGTH: Final[int] = 50
    MAX_ERROR_DETAIL_LENGTH: Final[int] = 200
