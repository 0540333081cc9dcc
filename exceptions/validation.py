"""
Validation Exception Classes for Uptime Monitor

Caller errors: missing query parameters, malformed dates or
identifiers, invalid endpoint fields and unsupported timezones.
All of them answer HTTP 400.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import UptimeMonitorException


def _truncate(value: Any, limit: int = 100) -> str:
    text = str(value)
    return text if len(text) <= limit else text[:limit] + "..."


class ValidationException(UptimeMonitorException):
    """
    Base Validation Exception

    ``field`` names the offending parameter as the caller spelled it
    (``endpointId``, ``startDate``); ``value`` is kept truncated for
    the log.
    """

    default_error_code = 3000
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field

        if value is not None:
            self.details["value"] = _truncate(value)

    @property
    def field(self) -> Optional[str]:
        return self.details.get("field")


class InvalidURLError(ValidationException):
    """Endpoint URL that is empty, too long, not http(s) or malformed."""

    default_error_code = 3001

    REASONS = {
        "empty": "URL is required",
        "no_scheme": "URL must start with http:// or https://",
        "invalid_domain": "The domain name is invalid",
        "too_long": "URL is too long (max 2048 characters)",
    }

    def __init__(
        self,
        message: str = "Invalid URL format",
        url: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", value=url, **kwargs)

        if reason:
            self.details["reason"] = reason

    def user_message(self) -> str:
        return self.REASONS.get(
            self.details.get("reason", ""),
            "Please provide a valid URL (e.g., https://example.com)",
        )


class MissingFieldError(ValidationException):
    """Required field or query parameter absent or blank."""

    default_error_code = 3004

    def __init__(
        self,
        message: str = "Required field is missing",
        field: str = "unknown",
        **kwargs: Any
    ) -> None:
        super().__init__(message, field=field, **kwargs)

    def user_message(self) -> str:
        return f"{self.field or 'field'} is required"


class FieldTooLongError(ValidationException):
    """Endpoint name or category over its length limit."""

    default_error_code = 3005

    def __init__(
        self,
        message: str = "Field exceeds maximum length",
        field: Optional[str] = None,
        max_length: Optional[int] = None,
        actual_length: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field=field, **kwargs)
        self.details["max_length"] = max_length
        self.details["actual_length"] = actual_length

    def user_message(self) -> str:
        field = (self.field or "field").capitalize()
        return f"{field} must be {self.details['max_length']} characters or less"


class InvalidFormatError(ValidationException):
    """
    Value present but unparseable: a date that is not ``YYYY-MM-DD``,
    an endpoint id that is not a UUID, a day count that is not a number.
    """

    default_error_code = 3006

    def __init__(
        self,
        message: str = "Invalid format",
        field: Optional[str] = None,
        expected_format: Optional[str] = None,
        example: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field=field, **kwargs)
        self.expected_format = expected_format or "the correct format"
        self.example = example

    def user_message(self) -> str:
        text = f"{self.field or 'Value'} must be in {self.expected_format}"
        if self.example:
            text += f" (e.g. {self.example})"
        return text


class InvalidTimezoneError(InvalidFormatError):
    """Timezone that is neither a known alias nor a fixed ``+HH:MM`` offset."""

    default_error_code = 3007

    def __init__(
        self,
        message: str = "Unsupported timezone",
        value: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(
            message,
            field="timezone",
            expected_format="a UTC offset like +05:30 or a known alias",
            example="+05:30",
            value=value,
            **kwargs
        )
