"""
Suggestion store.

Suggestions point at one exact document version. The anchor is checked on
write; on read every suggestion reports `anchor_valid`, which turns false once
the anchored version has been truncated away. Resolving is one-way: a second
resolve raises AlreadyResolved every time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.access import ensure_readable
from ..core.database import Database
from ..core.errors import AlreadyResolved, DanglingAnchor, NotFound, Unauthorized
from ..models.base import to_utc, utcnow
from ..models.document import Document
from ..models.suggestion import Suggestion

logger = logging.getLogger(__name__)


@dataclass
class SuggestionView:
    id: str
    document_id: str
    document_version: datetime
    original_text: str
    suggested_text: str
    description: Optional[str]
    is_resolved: bool
    author_id: str
    created_at: datetime
    anchor_valid: bool
    document_owner_id: Optional[str] = None

    @classmethod
    def build(cls, s: Suggestion, document_owner_id: Optional[str]) -> "SuggestionView":
        return cls(
            id=s.id,
            document_id=s.document_id,
            document_version=s.document_version,
            original_text=s.original_text,
            suggested_text=s.suggested_text,
            description=s.description,
            is_resolved=s.is_resolved,
            author_id=s.author_id,
            created_at=s.created_at,
            anchor_valid=document_owner_id is not None,
            document_owner_id=document_owner_id,
        )


def _with_anchor():
    """Suggestions outer-joined to their anchor version; owner is NULL when it is gone."""
    return select(Suggestion, Document.owner_id).outerjoin(
        Document,
        and_(
            Document.id == Suggestion.document_id,
            Document.version == Suggestion.document_version,
        ),
    )


class SuggestionStore:
    def __init__(self, db: Database):
        self._db = db

    async def _anchor(self, session: AsyncSession, document_id: str, version: datetime) -> Optional[Document]:
        result = await session.execute(
            select(Document).where(
                Document.id == document_id,
                Document.version == to_utc(version),
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        document_id: str,
        document_version: datetime,
        original_text: str,
        suggested_text: str,
        author_id: str,
        description: Optional[str] = None,
    ) -> SuggestionView:
        async with self._db.transaction() as session:
            anchor = await self._anchor(session, document_id, document_version)
            if anchor is None:
                raise DanglingAnchor()
            ensure_readable(author_id, anchor)

            suggestion = Suggestion(
                document_id=document_id,
                document_version=anchor.version,
                original_text=original_text,
                suggested_text=suggested_text,
                description=description,
                is_resolved=False,
                author_id=author_id,
                created_at=utcnow(),
            )
            session.add(suggestion)
            await session.flush()
            owner_id = anchor.owner_id

        logger.info("Suggestion %s created on %s @ %s", suggestion.id, document_id, anchor.version.isoformat())
        return SuggestionView.build(suggestion, owner_id)

    async def get(self, suggestion_id: str) -> SuggestionView:
        async with self._db.session() as session:
            row = (await session.execute(_with_anchor().where(Suggestion.id == suggestion_id))).first()
        if row is None:
            raise NotFound("Suggestion not found")
        return SuggestionView.build(row[0], row[1])

    async def resolve(self, suggestion_id: str, caller_id: str) -> SuggestionView:
        """Mark resolved. Allowed for the author and for the anchored document's owner."""
        async with self._db.transaction() as session:
            row = (await session.execute(_with_anchor().where(Suggestion.id == suggestion_id))).first()
            if row is None:
                raise NotFound("Suggestion not found")
            suggestion, owner_id = row
            if owner_id is None:
                raise DanglingAnchor()
            if caller_id not in (suggestion.author_id, owner_id):
                raise Unauthorized()

            # Conditional flip: only one resolve can ever win
            result = await session.execute(
                update(Suggestion)
                .where(
                    Suggestion.id == suggestion_id,
                    Suggestion.is_resolved == False,  # noqa: E712
                )
                .values(is_resolved=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise AlreadyResolved()
            await session.refresh(suggestion)

        logger.info("Suggestion %s resolved by %s", suggestion_id, caller_id)
        return SuggestionView.build(suggestion, owner_id)

    async def list_for_version(self, document_id: str, document_version: datetime) -> list[SuggestionView]:
        stmt = (
            _with_anchor()
            .where(
                Suggestion.document_id == document_id,
                Suggestion.document_version == to_utc(document_version),
            )
            .order_by(Suggestion.created_at.asc(), Suggestion.id.asc())
        )
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        return [SuggestionView.build(s, owner_id) for s, owner_id in rows]

    async def list_for_document(self, document_id: str) -> list[SuggestionView]:
        stmt = (
            _with_anchor()
            .where(Suggestion.document_id == document_id)
            .order_by(Suggestion.document_version.asc(), Suggestion.created_at.asc(), Suggestion.id.asc())
        )
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        return [SuggestionView.build(s, owner_id) for s, owner_id in rows]
