"""
Database Exception Classes for Uptime Monitor

Storage failures, missing endpoints and uniqueness violations in the
endpoint registry.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import UptimeMonitorException


class DatabaseException(UptimeMonitorException):
    """
    Base Database Exception

    Parent class for all database-related exceptions. Callers never
    see the driver's message.
    """

    default_error_code = 2000

    def user_message(self) -> str:
        return "An error occurred while processing your request."


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when the database cannot be reached or was never initialized.
    """

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if host:
            self.details["host"] = host

        if database:
            self.details["database"] = database

    def user_message(self) -> str:
        return "Unable to access the database. Please try again later."


class DatabaseQueryError(DatabaseException):
    """
    Database Query Error

    Raised when SQLAlchemy fails inside a session, e.g. a locked
    SQLite file during a check-record append.
    """

    default_error_code = 2002


class DatabaseNotFoundError(DatabaseException):
    """
    Database Not Found Error

    Raised when an endpoint id does not exist in the registry.
    """

    default_error_code = 2003
    http_status = 404

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)

    def user_message(self) -> str:
        entity = self.details.get("entity_type", "Record")
        return f"{entity} not found"


class DatabaseDuplicateError(DatabaseException):
    """
    Database Duplicate Error

    Raised when a new or renamed endpoint collides with an existing
    name or URL.
    """

    default_error_code = 2004
    http_status = 409

    def __init__(
        self,
        message: str = "Record already exists",
        entity_type: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type

        if field:
            self.details["field"] = field

        if value:
            self.details["value"] = value[:50] if len(value) > 50 else value

    def user_message(self) -> str:
        entity = self.details.get("entity_type", "Record")
        field = self.details.get("field")
        if field:
            return f"An {entity.lower()} with this {field} already exists"
        return f"This {entity.lower()} already exists"
