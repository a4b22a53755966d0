"""
Shared column types and an abstract base for single-key records.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from ..core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp that always binds and loads as an aware UTC datetime.

    SQLite drops the offset on the way in, so every value must already be UTC
    for string comparison to order correctly.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return to_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return to_utc(value)


class RecordBase(Base):
    """Abstract base with a string id and audit timestamps."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(191), primary_key=True, default=new_uuid
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
