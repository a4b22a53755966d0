"""
Edit suggestions, anchored to one exact document version.

The anchor (document_id, document_created_at) is checked when the suggestion
is written. It is not a foreign key; a missing anchor is reported at read time.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase, UTCDateTime


class Suggestion(RecordBase):
    __tablename__ = "suggestion"

    document_id: Mapped[str] = mapped_column(String(36), nullable=False)
    document_version: Mapped[datetime] = mapped_column(
        "document_created_at", UTCDateTime(), nullable=False
    )
    original_text: Mapped[str] = mapped_column(Text, nullable=False)
    suggested_text: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    author_id: Mapped[str] = mapped_column(
        "user_id", String(191), ForeignKey("user.id"), nullable=False
    )


Index("ix_suggestion_anchor", Suggestion.document_id, Suggestion.document_version)
