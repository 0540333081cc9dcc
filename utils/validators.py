"""
============================================================================
UPTIME MONITOR - VALIDATORS UTILITY
============================================================================
Validation for endpoint registration (URLs, names, categories) and for
query parameters (dates, endpoint ids, day counts). Every validator
raises a ValidationException subclass so the API layer can turn it into
a 400 response with a descriptive reason.
============================================================================
"""

import uuid
from datetime import date, datetime
from typing import Optional
from urllib.parse import urlparse

import validators as external_validators

from config.constants import Defaults, Limits
from exceptions.validation import (
    FieldTooLongError,
    InvalidFormatError,
    InvalidURLError,
    MissingFieldError,
    ValidationException,
)


# ============================================================================
# URL VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL validation for monitored endpoints.
    """

    ALLOWED_SCHEMES = ("http", "https")

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Check if URL is a well-formed http(s) URL.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not url or len(url) > Limits.MAX_URL_LENGTH:
            return False

        if urlparse(url).scheme.lower() not in URLValidator.ALLOWED_SCHEMES:
            return False

        # validators returns a falsy ValidationError object instead of raising
        return external_validators.url(url, simple_host=True) is True

    @staticmethod
    def validate_url(url: Optional[str]) -> str:
        """
        Validate and normalize an endpoint URL.

        Raises:
            InvalidURLError: With a reason code describing the problem
        """
        url = (url or "").strip()

        if not url:
            raise InvalidURLError("URL is required", url=url, reason="empty")

        if len(url) > Limits.MAX_URL_LENGTH:
            raise InvalidURLError("URL is too long", url=url, reason="too_long")

        if urlparse(url).scheme.lower() not in URLValidator.ALLOWED_SCHEMES:
            raise InvalidURLError("URL must use http or https", url=url, reason="no_scheme")

        if not URLValidator.is_valid_url(url):
            raise InvalidURLError("Invalid URL format", url=url, reason="invalid_domain")

        return url


# ============================================================================
# ENDPOINT FIELD VALIDATORS
# ============================================================================

class EndpointValidator:
    """Validation of the registry-owned endpoint fields."""

    @staticmethod
    def validate_name(name: Optional[str]) -> str:
        name = (name or "").strip()

        if not name:
            raise MissingFieldError("Endpoint name is required", field="name")

        if len(name) > Limits.MAX_NAME_LENGTH:
            raise FieldTooLongError(
                "Endpoint name is too long",
                field="name",
                max_length=Limits.MAX_NAME_LENGTH,
                actual_length=len(name),
            )

        return name

    @staticmethod
    def validate_category(category: Optional[str]) -> str:
        category = (category or "").strip()

        if not category:
            raise MissingFieldError("Endpoint category is required", field="category")

        if len(category) > Limits.MAX_CATEGORY_LENGTH:
            raise FieldTooLongError(
                "Endpoint category is too long",
                field="category",
                max_length=Limits.MAX_CATEGORY_LENGTH,
                actual_length=len(category),
            )

        return category


# ============================================================================
# QUERY PARAMETER VALIDATORS
# ============================================================================

class QueryValidator:
    """
    Parsing of query-string parameters for the read-only report views.
    """

    @staticmethod
    def require(value: Optional[str], field: str) -> str:
        if value is None or not value.strip():
            raise MissingFieldError(f"Missing required parameter: {field}", field=field)
        return value.strip()

    @staticmethod
    def parse_date(value: Optional[str], field: str = "date") -> date:
        """
        Parse a ``YYYY-MM-DD`` calendar date.

        Raises:
            MissingFieldError: If the value is absent
            InvalidFormatError: If the value is not a valid date
        """
        value = QueryValidator.require(value, field)
        try:
            return datetime.strptime(value, Defaults.DATE_FORMAT).date()
        except ValueError as e:
            raise InvalidFormatError(
                f"Invalid {field}: {value!r}",
                field=field,
                expected_format="YYYY-MM-DD",
                example="2025-01-31",
                value=value,
                cause=e,
            ) from e

    @staticmethod
    def parse_endpoint_id(value: Optional[str], field: str = "endpointId") -> uuid.UUID:
        """Parse an endpoint id, which is always a UUID."""
        value = QueryValidator.require(value, field)
        try:
            return uuid.UUID(value)
        except ValueError as e:
            raise InvalidFormatError(
                f"Invalid {field}: {value!r}",
                field=field,
                expected_format="a UUID",
                value=value,
                cause=e,
            ) from e

    @staticmethod
    def parse_positive_int(
        value: Optional[str],
        field: str,
        default: int,
        maximum: int,
    ) -> int:
        """Parse an optional integer in ``[1, maximum]``."""
        if value is None or not value.strip():
            return default

        try:
            number = int(value)
        except ValueError as e:
            raise InvalidFormatError(
                f"Invalid {field}: {value!r}",
                field=field,
                expected_format="a whole number",
                value=value,
                cause=e,
            ) from e

        if number < 1 or number > maximum:
            raise ValidationException(
                f"{field} must be between 1 and {maximum}",
                field=field,
                value=value,
            )

        return number
