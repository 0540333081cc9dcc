"""
============================================================================
UPTIME MONITOR - LOGGING UTILITY
============================================================================
Loguru-based logging with a console sink, a rotating application log and
a separate error log.

Components obtain a bound logger with ``get_logger("Component")``; the
bound name is rendered in every line through ``{extra[name]}``.
============================================================================
"""

import sys
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings, Settings, get_settings


# Lines logged through the bare logger still need a name for the format
logger.configure(extra={"name": "app"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure logging sinks.

    Removes loguru's default handler, then installs a console sink and,
    when file logging is enabled, a rotating log file plus ``errors.log``.

    Args:
        settings: Application settings (defaults to the cached settings)
    """
    settings = settings or get_settings()
    log_settings: LoggingSettings = settings.logging
    log_level = log_settings.level.value

    logger.remove()

    # Console Handler
    logger.add(
        sys.stderr,
        format=log_settings.format,
        level=log_level,
        colorize=True,
        backtrace=True,
        diagnose=settings.debug,
    )

    # File Handlers
    if log_settings.file_enabled:
        log_settings.directory.mkdir(parents=True, exist_ok=True)
        file_format = (
            "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
            "{extra[name]} | {name}:{function}:{line} - {message}"
        )

        logger.add(
            log_settings.directory / "uptime_monitor.log",
            format=file_format,
            level=log_level,
            rotation=log_settings.rotation,
            retention=log_settings.retention,
            compression=log_settings.compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

        logger.add(
            log_settings.directory / "errors.log",
            format=file_format,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression=log_settings.compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    logger.info("Logging system initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"File logging: {log_settings.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Component name rendered in each line

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger
