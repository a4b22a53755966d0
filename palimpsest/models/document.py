"""
Documents — append-only snapshots keyed by (id, version).

Every edit inserts a new row with the same id and a newer `created_at`; the
row with the greatest `created_at` is the current version. Nothing updates a
row in place.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import String, Text, JSON, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .base import UTCDateTime, new_uuid


class DocumentKind(str, Enum):
    TEXT = "text"
    CODE = "code"


class DocumentType(str, Enum):
    GENERIC = "generic"
    APARTMENT = "apartment"


class ApartmentProperties(BaseModel):
    """Payload carried by apartment documents. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    features: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class Document(Base):
    __tablename__ = "document"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    version: Mapped[datetime] = mapped_column("created_at", UTCDateTime(), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=DocumentKind.TEXT.value)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=DocumentType.GENERIC.value)
    properties: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True, default=None)
    owner_id: Mapped[str] = mapped_column(
        "user_id", String(191), ForeignKey("user.id"), nullable=False
    )
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def document_type(self) -> DocumentType:
        return DocumentType(self.type)

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind(self.kind)


Index("ix_document_user_type", Document.owner_id, Document.type)
