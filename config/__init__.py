"""
Configuration Package for Uptime Monitor

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    AlertSettings,
    ReportingSettings,
    ServerSettings,
    LoggingSettings,
    SecuritySettings,
    get_settings
)

from config.constants import (
    CheckStatus,
    ProbeErrorKind,
    StatusCodes,
    Defaults,
    Limits,
    UNKNOWN_STATUS
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "AlertSettings",
    "ReportingSettings",
    "ServerSettings",
    "LoggingSettings",
    "SecuritySettings",
    "get_settings",

    # Constants
    "CheckStatus",
    "ProbeErrorKind",
    "StatusCodes",
    "Defaults",
    "Limits",
    "UNKNOWN_STATUS"
]
