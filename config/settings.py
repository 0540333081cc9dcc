"""
Settings Module for Uptime Monitor

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Includes validation, type checking, and sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development, tests).
    ``dsn`` wins over the individual connection fields when set.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    # Database type and connection
    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )
    dsn: Optional[str] = Field(
        default=None,
        description="Explicit SQLAlchemy URL (overrides the fields below)"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="uptime_monitor",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/uptime_monitor.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )

    # Query settings
    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.dsn:
            return self.dsn

        if self.type == DatabaseType.SQLITE:
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        elif self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Engine Configuration Settings

    Controls the check interval, probe timeout, the consecutive
    failure threshold for downtime alerts and cycle concurrency.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore"
    )

    # Cycle timing
    check_interval: float = Field(
        default=30.0,
        gt=0,
        le=86400,
        description="Seconds between check cycles"
    )
    scheduler_tick: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Scheduler wake-up resolution in seconds"
    )
    heartbeat_interval: float = Field(
        default=600.0,
        gt=0,
        description="Seconds between heartbeat log lines"
    )
    autostart_scheduler: bool = Field(
        default=True,
        description="Start the recurring scheduler on application boot"
    )

    # HTTP client settings
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="HTTP probe timeout in seconds"
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow HTTP redirects when probing"
    )
    user_agent: str = Field(
        default="UptimeMonitor/1.0 (+https://github.com/uptime-monitor)",
        description="User-Agent header sent with probes"
    )

    # Concurrency
    max_concurrent_probes: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum endpoints probed in parallel within a cycle"
    )

    # Alerting
    alert_threshold: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Consecutive DOWN checks before a downtime alert fires"
    )

    # Downtime tracker cache
    tracker_capacity: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of endpoint trackers kept in memory"
    )
    rehydrate_trackers: bool = Field(
        default=True,
        description="Seed new trackers from the most recent stored checks"
    )


class AlertSettings(BaseSettingsConfig):
    """Outbound chat-webhook alert settings."""

    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        env_file=".env",
        extra="ignore"
    )

    webhook_url: Optional[str] = Field(
        default=None,
        description="Incoming webhook URL receiving {\"text\": ...} posts"
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Webhook request timeout in seconds"
    )
    queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum pending alerts"
    )


class ReportingSettings(BaseSettingsConfig):
    """
    Reporting Settings

    ``timezone`` is the fixed reporting timezone that defines calendar
    day boundaries for every aggregation query.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPORT_",
        env_file=".env",
        extra="ignore"
    )

    timezone: str = Field(
        default="+05:30",
        description="Fixed UTC offset (+HH:MM) or alias (IST, UTC)"
    )
    default_days: int = Field(
        default=90,
        ge=1,
        le=366,
        description="Default number of days in the status rollup"
    )
    max_days: int = Field(
        default=366,
        ge=1,
        le=3660,
        description="Largest accepted rollup / report range in days"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezones that cannot be turned into a fixed offset."""
        from utils.timezone import parse_utc_offset

        try:
            parse_utc_offset(v)
        except Exception as e:
            raise ValueError(f"Invalid reporting timezone: {v!r}") from e
        return v

    @property
    def tzinfo(self):
        """The reporting timezone as a fixed-offset ``datetime.timezone``."""
        from utils.timezone import parse_utc_offset

        return parse_utc_offset(self.timezone)


class ServerSettings(BaseSettingsConfig):
    """HTTP API server settings."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        extra="ignore"
    )

    host: str = Field(
        default="0.0.0.0",
        description="Bind address"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Bind port"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and rotating file sinks for loguru.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )
    format: str = Field(
        default=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[name]}</cyan> - "
            "<level>{message}</level>"
        ),
        description="Loguru console format"
    )
    file_enabled: bool = Field(
        default=True,
        description="Enable file logging"
    )
    directory: Path = Field(
        default=Path("logs"),
        description="Directory for log files"
    )
    rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    compression: str = Field(
        default="gz",
        description="Compression format for rotated logs"
    )


class SecuritySettings(BaseSettingsConfig):
    """Shared secret protecting the trigger and control operations."""

    model_config = SettingsConfigDict(
        env_prefix="SECURITY_",
        env_file=".env",
        extra="ignore"
    )

    cron_secret: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret expected in the Authorization header"
    )


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Application info
    app_name: str = Field(
        default="Uptime Monitor",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings
    )
    alerts: AlertSettings = Field(
        default_factory=AlertSettings
    )
    reporting: ReportingSettings = Field(
        default_factory=ReportingSettings
    )
    server: ServerSettings = Field(
        default_factory=ServerSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )
    security: SecuritySettings = Field(
        default_factory=SecuritySettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False

        elif self.is_development:
            if self.logging.level == LogLevel.INFO:
                self.logging.level = LogLevel.DEBUG

        elif self.is_testing:
            self.logging.file_enabled = False

        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                        and k.lower() != "dsn"
                        and "webhook" not in k.lower()
                    }
                elif isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
