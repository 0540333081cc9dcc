"""
Exceptions Package for Uptime Monitor

Provides the exception hierarchy used for error handling
throughout the application.
"""

from exceptions.base import (
    UptimeMonitorException,
    ConfigurationError,
    AuthorizationError
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
    DatabaseNotFoundError,
    DatabaseDuplicateError
)

from exceptions.validation import (
    ValidationException,
    InvalidURLError,
    MissingFieldError,
    FieldTooLongError,
    InvalidFormatError,
    InvalidTimezoneError
)

from exceptions.monitoring import (
    MonitoringException,
    CycleInProgressError,
    SchedulerError,
    AlertDeliveryError
)

__all__ = [
    # Base exceptions
    "UptimeMonitorException",
    "ConfigurationError",
    "AuthorizationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "DatabaseNotFoundError",
    "DatabaseDuplicateError",

    # Validation exceptions
    "ValidationException",
    "InvalidURLError",
    "MissingFieldError",
    "FieldTooLongError",
    "InvalidFormatError",
    "InvalidTimezoneError",

    # Monitoring exceptions
    "MonitoringException",
    "CycleInProgressError",
    "SchedulerError",
    "AlertDeliveryError"
]
