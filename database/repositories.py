"""
============================================================================
UPTIME MONITOR - REPOSITORIES
============================================================================
Data access for the monitoring engine:

    EndpointRepository   the Endpoint Registry (list / get / create /
                         update / delete)
    CheckRepository      the Check Store (append-only check records,
                         queried by endpoint and time range)

Every public method opens its own session, so each call is an
independent transaction.
============================================================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, or_, select

from database.connection import DatabaseManager
from database.models import CheckRecord, Endpoint
from exceptions import DatabaseDuplicateError, DatabaseNotFoundError
from utils.logger import get_logger
from utils.validators import EndpointValidator, URLValidator


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)


# ============================================================================
# ENDPOINT REGISTRY
# ============================================================================

class EndpointRepository(BaseRepository):
    """Repository for monitored endpoints."""

    async def list_endpoints(self) -> List[Endpoint]:
        """All registered endpoints, ordered by name."""
        async with self.db.session() as session:
            result = await session.execute(select(Endpoint).order_by(Endpoint.name.asc()))
            return list(result.scalars().all())

    async def get(self, endpoint_id: uuid.UUID) -> Optional[Endpoint]:
        async with self.db.session() as session:
            return await session.get(Endpoint, endpoint_id)

    async def get_or_raise(self, endpoint_id: uuid.UUID) -> Endpoint:
        """
        Fetch an endpoint by id.

        Raises:
            DatabaseNotFoundError: If no endpoint has this id
        """
        endpoint = await self.get(endpoint_id)
        if endpoint is None:
            raise DatabaseNotFoundError(
                f"Endpoint {endpoint_id} not found",
                entity_type="Endpoint",
                entity_id=endpoint_id,
            )
        return endpoint

    async def count(self) -> int:
        async with self.db.session() as session:
            result = await session.execute(select(func.count(Endpoint.id)))
            return result.scalar_one()

    async def create(self, name: str, url: str, category: str = "website") -> Endpoint:
        """
        Register a new endpoint.

        Raises:
            ValidationException: If name, URL or category is invalid
            DatabaseDuplicateError: If the name or URL is already registered
        """
        name = EndpointValidator.validate_name(name)
        url = URLValidator.validate_url(url)
        category = EndpointValidator.validate_category(category)

        async with self.db.session() as session:
            await self._ensure_unique(session, name, url)

            endpoint = Endpoint(name=name, url=url, category=category)
            session.add(endpoint)
            await session.flush()

        self.logger.info(f"✓ Endpoint registered: {name} ({url})")
        return endpoint

    async def update(
        self,
        endpoint_id: uuid.UUID,
        name: Optional[str] = None,
        url: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Endpoint:
        """
        Update the given fields of an endpoint.

        Raises:
            DatabaseNotFoundError: If the endpoint does not exist
            DatabaseDuplicateError: If the new name or URL is taken
        """
        async with self.db.session() as session:
            endpoint = await session.get(Endpoint, endpoint_id)
            if endpoint is None:
                raise DatabaseNotFoundError(
                    f"Endpoint {endpoint_id} not found",
                    entity_type="Endpoint",
                    entity_id=endpoint_id,
                )

            new_name = EndpointValidator.validate_name(name) if name is not None else endpoint.name
            new_url = URLValidator.validate_url(url) if url is not None else endpoint.url
            await self._ensure_unique(session, new_name, new_url, exclude_id=endpoint.id)

            endpoint.name = new_name
            endpoint.url = new_url
            if category is not None:
                endpoint.category = EndpointValidator.validate_category(category)
            await session.flush()

        self.logger.info(f"✓ Endpoint updated: {endpoint.name}")
        return endpoint

    async def delete(self, endpoint_id: uuid.UUID) -> None:
        """
        Delete an endpoint together with all of its check records.

        Raises:
            DatabaseNotFoundError: If the endpoint does not exist
        """
        async with self.db.session() as session:
            endpoint = await session.get(Endpoint, endpoint_id)
            if endpoint is None:
                raise DatabaseNotFoundError(
                    f"Endpoint {endpoint_id} not found",
                    entity_type="Endpoint",
                    entity_id=endpoint_id,
                )

            await session.execute(
                delete(CheckRecord).where(CheckRecord.endpoint_id == endpoint_id)
            )
            await session.delete(endpoint)

        self.logger.info(f"Endpoint deleted: {endpoint.name}")

    @staticmethod
    async def _ensure_unique(
        session,
        name: str,
        url: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Endpoint).where(or_(Endpoint.name == name, Endpoint.url == url))
        if exclude_id is not None:
            query = query.where(Endpoint.id != exclude_id)

        existing = (await session.execute(query)).scalars().first()
        if existing is None:
            return

        field, value = ("name", name) if existing.name == name else ("url", url)
        raise DatabaseDuplicateError(
            f"Endpoint with this {field} already exists",
            entity_type="Endpoint",
            field=field,
            value=value,
        )


# ============================================================================
# CHECK STORE
# ============================================================================

class CheckRepository(BaseRepository):
    """
    Repository for check records.

    Records are only ever appended; range queries return them in
    timestamp order with insertion order breaking ties.
    """

    async def append(self, record: CheckRecord) -> CheckRecord:
        """Persist one check record in its own transaction."""
        async with self.db.session() as session:
            session.add(record)
            await session.flush()
        return record

    async def query(
        self,
        endpoint_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> List[CheckRecord]:
        """
        Check records with ``start <= checked_at < end``, oldest first.

        Args:
            endpoint_id: Endpoint to read
            start: Inclusive lower bound (naive UTC)
            end: Exclusive upper bound (naive UTC)
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(CheckRecord)
                .where(
                    CheckRecord.endpoint_id == endpoint_id,
                    CheckRecord.checked_at >= start,
                    CheckRecord.checked_at < end,
                )
                .order_by(CheckRecord.checked_at.asc(), CheckRecord.id.asc())
            )
            return list(result.scalars().all())

    async def latest(self, endpoint_id: uuid.UUID) -> Optional[CheckRecord]:
        """Most recent check record of an endpoint, if any."""
        records = await self.recent(endpoint_id, limit=1)
        return records[0] if records else None

    async def recent(self, endpoint_id: uuid.UUID, limit: int) -> List[CheckRecord]:
        """The ``limit`` most recent check records, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(CheckRecord)
                .where(CheckRecord.endpoint_id == endpoint_id)
                .order_by(CheckRecord.checked_at.desc(), CheckRecord.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count(self, endpoint_id: Optional[uuid.UUID] = None) -> int:
        async with self.db.session() as session:
            query = select(func.count(CheckRecord.id))
            if endpoint_id is not None:
                query = query.where(CheckRecord.endpoint_id == endpoint_id)
            result = await session.execute(query)
            return result.scalar_one()
