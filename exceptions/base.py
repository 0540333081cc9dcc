"""
Base Exception Classes for Uptime Monitor

Every application error carries a numeric code, structured details
for the log and the HTTP status the API layer answers with.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class UptimeMonitorException(Exception):
    """
    Base Exception Class

    Attributes:
        message: Internal error message, logged but not always shown
        error_code: Numeric error code for categorization
        details: Structured context for the log line
        cause: The underlying exception, if any
    """

    # Default error code
    default_error_code: int = 1000

    # HTTP status used when the error reaches the API layer
    http_status: int = 500

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause

    @property
    def full_message(self) -> str:
        """Message prefixed with the error code."""
        return f"[{self.error_code}] {self.message}"

    def log_format(self) -> str:
        """One-line description for error logs."""
        parts = [
            f"Exception: {self.__class__.__name__}",
            f"Code: {self.error_code}",
            f"Message: {self.message}"
        ]

        if self.details:
            parts.append(f"Details: {self.details}")

        if self.cause:
            parts.append(f"Cause: {self.cause}")

        return " | ".join(parts)

    def user_message(self) -> str:
        """
        Message returned to API callers.

        Subclasses override this when the internal message may leak
        configuration or storage details.
        """
        return self.message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )


class ConfigurationError(UptimeMonitorException):
    """
    Configuration Error

    Raised when the running configuration cannot serve a request,
    such as a missing shared secret for the cycle trigger.
    """

    default_error_code = 1100
    http_status = 500

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if config_key:
            self.details["config_key"] = config_key

    def user_message(self) -> str:
        return "Server configuration error"


class AuthorizationError(UptimeMonitorException):
    """
    Authorization Error

    Raised when a protected operation is called without a valid
    shared secret. The user message never says what was wrong.
    """

    default_error_code = 1400
    http_status = 401

    def __init__(self, message: str = "Unauthorized", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)

    def user_message(self) -> str:
        return "Unauthorized"
