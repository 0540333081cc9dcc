"""
============================================================================
UPTIME MONITOR - DATABASE CONNECTION
============================================================================
Engine and session management using SQLAlchemy's async engine and
session maker. SQLite runs through aiosqlite, PostgreSQL through asyncpg.

Each ``session()`` block is one self-contained transaction: committed on
success, rolled back on any failure. The check cycle relies on this to
keep every check record insert independent.
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool, StaticPool

from config.settings import DatabaseSettings, get_settings
from database.models import Base
from exceptions import DatabaseConnectionError, DatabaseQueryError
from utils.logger import get_logger


logger = get_logger("Database")


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and session factory.

    One instance is constructed by the application and handed to the
    repositories; nothing here is process-global.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        """
        Initialize database manager.

        Args:
            settings: Database settings (defaults to the cached settings)
        """
        self.settings = settings or get_settings().database
        self.database_url = self.settings.url
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        logger.info(f"DatabaseManager created for {self._mask_password(self.database_url)}")

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @staticmethod
    def _mask_password(url: str) -> str:
        """Mask the password in a database URL for logging."""
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.settings.echo}

        if self.database_url.startswith("sqlite"):
            if ":memory:" in self.database_url or self.database_url.endswith("://"):
                # In-memory databases live and die with a single connection
                kwargs["poolclass"] = StaticPool
            else:
                kwargs["poolclass"] = NullPool
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_size"] = self.settings.pool_size
            kwargs["max_overflow"] = self.settings.max_overflow
            kwargs["pool_timeout"] = self.settings.pool_timeout
            kwargs["pool_recycle"] = self.settings.pool_recycle
            kwargs["pool_pre_ping"] = True

        return kwargs

    async def initialize(self) -> None:
        """
        Create the engine and session factory, verify connectivity and
        create missing tables.

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            if self.database_url.startswith("sqlite") and self.settings.dsn is None:
                self.settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

            try:
                self.engine = create_async_engine(
                    self.database_url,
                    **self._get_engine_kwargs()
                )
                self.session_factory = async_sessionmaker(
                    bind=self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                self._register_event_listeners()

                async with self.engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))

                await self.create_tables()

            except SQLAlchemyError as e:
                logger.error(f"Failed to initialize database: {e}")
                raise DatabaseConnectionError(
                    message=f"Failed to connect to database: {e}",
                    host=self.settings.host,
                    database=self.settings.name,
                    cause=e
                ) from e

            self._is_initialized = True
            logger.info("✓ Database initialized")

    def _register_event_listeners(self) -> None:
        is_sqlite = self.database_url.startswith("sqlite")

        @event.listens_for(self.engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            if is_sqlite:
                # SQLite ignores ON DELETE CASCADE unless asked
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Yields:
            AsyncSession instance

        Raises:
            DatabaseConnectionError: If the manager was never initialized
            DatabaseQueryError: If SQLAlchemy fails inside the block

        Example:
            async with db_manager.session() as session:
                endpoint = await session.get(Endpoint, endpoint_id)
        """
        if not self._is_initialized or self.session_factory is None:
            raise DatabaseConnectionError("Database not initialized")

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise DatabaseQueryError(message=str(e), cause=e) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """Close database connections and cleanup resources."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            self._is_initialized = False
            logger.info("✓ Database connections closed")
