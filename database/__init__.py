"""
Database Package for Uptime Monitor

Provides database connectivity, models, and the repositories that act
as the Endpoint Registry and the Check Store.
"""

from database.connection import DatabaseManager

from database.models import (
    Base,
    Endpoint,
    CheckRecord
)

from database.repositories import (
    BaseRepository,
    EndpointRepository,
    CheckRepository
)

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "Endpoint",
    "CheckRecord",

    # Repositories
    "BaseRepository",
    "EndpointRepository",
    "CheckRepository"
]
