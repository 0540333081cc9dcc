"""
============================================================================
UPTIME MONITOR - HTTP PROBER
============================================================================
Issues a single HTTP GET against an endpoint URL and classifies the
outcome. The prober never raises for network failures: every path ends
in a ProbeResult.

Classification
--------------
    status code in [200, 500)   → UP
    status code >= 500          → DOWN, "HTTP {code}: {reason}"
    no response at all          → DOWN, error kind from the transport
                                  failure (timeout, DNS, refused, TLS,
                                  reset, unreachable, other)

Response time is wall-clock milliseconds from request start to response
or failure, and is always present.
============================================================================
"""

import errno
import socket
import ssl
import time
from typing import Any, Dict, Iterator, Optional

import httpx

from config.constants import CheckStatus, Limits, ProbeErrorKind, StatusCodes
from config.settings import MonitoringSettings, get_settings
from utils.logger import get_logger


logger = get_logger("Prober")


# ============================================================================
# PROBE RESULT
# ============================================================================

class ProbeResult:
    """
    Value object carrying the outcome of one probe back to the runner.
    """
    __slots__ = (
        "status", "http_code", "response_time", "error_message", "error_kind",
    )

    def __init__(
        self,
        status: CheckStatus,
        response_time: int,
        http_code: Optional[int] = None,
        error_message: Optional[str] = None,
        error_kind: Optional[ProbeErrorKind] = None,
    ):
        self.status = status
        self.http_code = http_code
        self.response_time = response_time
        self.error_message = error_message
        self.error_kind = error_kind

    @property
    def is_up(self) -> bool:
        return self.status == CheckStatus.UP

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "http_code": self.http_code,
            "response_time": self.response_time,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }

    def __repr__(self) -> str:
        return (
            f"ProbeResult(status={self.status.value}, http_code={self.http_code}, "
            f"response_time={self.response_time}, error_kind={self.error_kind})"
        )


# ============================================================================
# TRANSPORT ERROR CLASSIFICATION
# ============================================================================

_UNREACHABLE_ERRNOS = {errno.ENETUNREACH, errno.EHOSTUNREACH}

_MESSAGE_HINTS = (
    (ProbeErrorKind.DNS_FAILURE, (
        "name or service not known",
        "nodename nor servname",
        "getaddrinfo failed",
        "temporary failure in name resolution",
        "no address associated with hostname",
    )),
    (ProbeErrorKind.TLS_ERROR, ("certificate", "ssl", "tls")),
    (ProbeErrorKind.CONNECTION_REFUSED, ("connection refused",)),
    (ProbeErrorKind.CONNECTION_RESET, ("connection reset", "server disconnected")),
    (ProbeErrorKind.UNREACHABLE, ("network is unreachable", "no route to host")),
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_transport_error(exc: BaseException) -> ProbeErrorKind:
    """
    Map an exception raised while requesting a URL to a ProbeErrorKind.

    httpx wraps the socket-level error, so the whole cause chain is
    inspected before falling back to the message text.
    """
    if isinstance(exc, httpx.TimeoutException):
        return ProbeErrorKind.TIMEOUT

    for cause in _exception_chain(exc):
        if isinstance(cause, (TimeoutError, socket.timeout)):
            return ProbeErrorKind.TIMEOUT
        if isinstance(cause, ssl.SSLError):
            return ProbeErrorKind.TLS_ERROR
        if isinstance(cause, socket.gaierror):
            return ProbeErrorKind.DNS_FAILURE
        if isinstance(cause, ConnectionRefusedError):
            return ProbeErrorKind.CONNECTION_REFUSED
        if isinstance(cause, ConnectionResetError):
            return ProbeErrorKind.CONNECTION_RESET
        if isinstance(cause, OSError) and cause.errno in _UNREACHABLE_ERRNOS:
            return ProbeErrorKind.UNREACHABLE

    text = " ".join(str(cause) for cause in _exception_chain(exc)).lower()
    for kind, hints in _MESSAGE_HINTS:
        if any(hint in text for hint in hints):
            return kind

    if isinstance(exc, httpx.RemoteProtocolError):
        return ProbeErrorKind.CONNECTION_RESET

    return ProbeErrorKind.OTHER


def _failure_detail(exc: BaseException) -> str:
    detail = str(exc).strip() or type(exc).__name__
    return detail[:Limits.MAX_ERROR_DETAIL_LENGTH]


# ============================================================================
# HTTP PROBER
# ============================================================================

class HTTPProber:
    """
    Performs one HTTP GET per check using an httpx async client.

    No retries: a failed probe is simply a DOWN result, and the downtime
    tracker's consecutive-failure threshold absorbs transient blips.
    """

    def __init__(
        self,
        settings: Optional[MonitoringSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().monitoring
        self.timeout = self.settings.request_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=self.settings.follow_redirects,
            headers={"User-Agent": self.settings.user_agent},
            transport=self._transport,
        )

    async def check(self, url: str) -> ProbeResult:
        """
        Probe *url* once.

        Returns
        -------
        ProbeResult
            UP for codes in [200, 500), DOWN otherwise.
        """
        start_time = time.perf_counter()
        try:
            async with self._client() as client:
                response = await client.get(url)

            elapsed_ms = self._elapsed_ms(start_time)
            code = response.status_code

            if StatusCodes.is_up(code):
                logger.debug(f"[HTTP] {url} → {code} in {elapsed_ms}ms")
                return ProbeResult(
                    status=CheckStatus.UP,
                    http_code=code,
                    response_time=elapsed_ms,
                )

            reason = response.reason_phrase
            message = f"HTTP {code}: {reason}" if reason else f"HTTP {code}"
            logger.info(f"[HTTP] {url} → {message} in {elapsed_ms}ms")
            return ProbeResult(
                status=CheckStatus.DOWN,
                http_code=code,
                response_time=elapsed_ms,
                error_message=message,
                error_kind=ProbeErrorKind.HTTP_ERROR,
            )

        except Exception as e:
            elapsed_ms = self._elapsed_ms(start_time)
            kind = classify_transport_error(e)
            message = ProbeErrorKind.describe(kind, _failure_detail(e))
            logger.info(f"[HTTP] {url} ✗ {kind.value}: {message} after {elapsed_ms}ms")
            return ProbeResult(
                status=CheckStatus.DOWN,
                response_time=elapsed_ms,
                error_message=message,
                error_kind=kind,
            )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int(round((time.perf_counter() - start_time) * 1000))
