"""
============================================================================
UPTIME MONITOR - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for the monitoring engine:

    Endpoint      a named, uniquely-URLed target under monitoring
    CheckRecord   one immutable probe result for one endpoint at one instant

All timestamps are stored as naive UTC.
============================================================================
"""

import uuid
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text,
    Enum, ForeignKey, Index, Uuid
)
from sqlalchemy.orm import declarative_base

from config.constants import CheckStatus, ProbeErrorKind
from utils.helpers import TimeHelper
from utils.timezone import isoformat_utc


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.get_utc_now
    )
    updated_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.get_utc_now,
        onupdate=TimeHelper.get_utc_now
    )


# ============================================================================
# ENDPOINT
# ============================================================================

class Endpoint(Base, TimestampMixin):
    """
    A monitored HTTP endpoint.

    Name and URL are both unique. Deleting an endpoint deletes its
    check records.
    """
    __tablename__ = "endpoints"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    url = Column(String(2048), nullable=False, unique=True)
    category = Column(String(50), nullable=False, default="website")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "url": self.url,
            "category": self.category,
            "created_at": isoformat_utc(self.created_at) if self.created_at else None,
            "updated_at": isoformat_utc(self.updated_at) if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Endpoint(id={self.id}, name={self.name!r}, url={self.url!r})>"


# ============================================================================
# CHECK RECORD
# ============================================================================

class CheckRecord(Base):
    """
    One probe result. Append-only.
    """
    __tablename__ = "check_records"

    # SQLite only autoincrements INTEGER primary keys
    id = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True
    )
    endpoint_id = Column(
        Uuid,
        ForeignKey("endpoints.id", ondelete="CASCADE"),
        nullable=False
    )

    status = Column(Enum(CheckStatus, name="check_status"), nullable=False)
    http_code = Column(Integer, nullable=True)
    response_time = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    error_kind = Column(Enum(ProbeErrorKind, name="probe_error_kind"), nullable=True)
    checked_at = Column(DateTime, nullable=False, default=TimeHelper.get_utc_now)

    __table_args__ = (
        Index("idx_check_records_endpoint_time", "endpoint_id", "checked_at"),
    )

    @property
    def is_up(self) -> bool:
        return self.status == CheckStatus.UP

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "endpoint_id": str(self.endpoint_id),
            "status": self.status.value,
            "http_code": self.http_code,
            "response_time": self.response_time,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "checked_at": isoformat_utc(self.checked_at),
        }

    def __repr__(self) -> str:
        return (
            f"<CheckRecord(endpoint_id={self.endpoint_id}, status={self.status}, "
            f"checked_at={self.checked_at})>"
        )
