"""
Document version store.

Append-only: `create_version` inserts a snapshot, `truncate_after` deletes the
tail of a document's history. The current version is always the row with
the greatest version for an id; it is computed on read, never stored.

Ordering per id is enforced by the (id, created_at) primary key: a writer
picks `max(now, latest + 1µs)` and, if another writer took that slot first,
retries the whole transaction with a fresh read.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select, delete as sql_delete, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import Database
from ..core.errors import InvalidInput, NotFound, Unauthorized
from ..models.base import new_uuid, to_utc, utcnow
from ..models.document import ApartmentProperties, Document, DocumentKind, DocumentType
from ..models.suggestion import Suggestion

logger = logging.getLogger(__name__)

VERSION_STEP = timedelta(microseconds=1)


@dataclass
class TruncationResult:
    document_id: str
    deleted: int
    orphaned_suggestions: int


def parse_type(value: Union[str, DocumentType, None]) -> Optional[DocumentType]:
    if value is None:
        return None
    try:
        return DocumentType(value)
    except ValueError:
        raise InvalidInput("Unknown type")


def parse_kind(value: Union[str, DocumentKind]) -> DocumentKind:
    try:
        return DocumentKind(value)
    except ValueError:
        raise InvalidInput("Unknown kind")


def normalize_properties(doc_type: DocumentType, properties: Any) -> Optional[dict]:
    """Validate the type-specific payload of a document."""
    if doc_type is DocumentType.GENERIC:
        if properties is None:
            return None
        if not isinstance(properties, dict):
            raise InvalidInput("Document properties must be an object")
        return dict(properties)
    if doc_type is DocumentType.APARTMENT:
        try:
            return ApartmentProperties.model_validate(properties or {}).model_dump()
        except ValidationError:
            raise InvalidInput("Invalid apartment properties")
    raise InvalidInput(f"Unknown type: {doc_type}")


class DocumentVersionStore:
    def __init__(self, db: Database, max_attempts: int = 5):
        self._db = db
        self.max_attempts = max(1, max_attempts)

    # ── Reads ────────────────────────────────────────────────────────

    async def _latest(self, session: AsyncSession, document_id: str) -> Optional[Document]:
        result = await session.execute(
            select(Document)
            .where(Document.id == document_id)
            .order_by(Document.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest(self, document_id: str) -> Optional[Document]:
        async with self._db.session() as session:
            return await self._latest(session, document_id)

    async def get_version(self, document_id: str, version: datetime) -> Optional[Document]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Document).where(
                    Document.id == document_id,
                    Document.version == to_utc(version),
                )
            )
            return result.scalar_one_or_none()

    async def get_versions(
        self,
        owner_id: Optional[str] = None,
        document_id: Optional[str] = None,
        type: Union[str, DocumentType, None] = None,
    ) -> list[Document]:
        """
        All matching versions, oldest first; the last element is current.

        With a document id every version of that id is returned whoever owns
        it, so the caller can tell "not found" from "not yours". Without one,
        the listing is scoped to `owner_id`.
        """
        doc_type = parse_type(type)
        stmt = select(Document)
        if document_id is not None:
            stmt = stmt.where(Document.id == document_id)
        elif owner_id is not None:
            stmt = stmt.where(Document.owner_id == owner_id)
        else:
            raise InvalidInput("Missing document parameters")
        if doc_type is not None:
            stmt = stmt.where(Document.type == doc_type.value)
        stmt = stmt.order_by(Document.version.asc(), Document.id.asc())

        async with self._db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_current(
        self, owner_id: str, type: Union[str, DocumentType, None] = None
    ) -> list[Document]:
        """Current version of each of the owner's documents, newest first."""
        doc_type = parse_type(type)
        latest = (
            select(Document.id.label("id"), func.max(Document.version).label("version"))
            .where(Document.owner_id == owner_id)
            .group_by(Document.id)
            .subquery()
        )
        stmt = select(Document).join(
            latest,
            and_(Document.id == latest.c.id, Document.version == latest.c.version),
        )
        if doc_type is not None:
            stmt = stmt.where(Document.type == doc_type.value)
        stmt = stmt.order_by(Document.version.desc())

        async with self._db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ── Writes ───────────────────────────────────────────────────────

    async def create_version(
        self,
        *,
        owner_id: str,
        title: str,
        content: Optional[str],
        kind: Union[str, DocumentKind] = DocumentKind.TEXT,
        document_id: Optional[str] = None,
        type: Union[str, DocumentType, None] = None,
        properties: Any = None,
        visible: Optional[bool] = None,
    ) -> Document:
        """
        Append a new version. Omitted type/properties/visible carry over from
        the current version so an edit does not silently reset them.
        """
        document_id = document_id or new_uuid()
        doc_kind = parse_kind(kind)
        requested_type = parse_type(type)

        last_error: Optional[IntegrityError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._db.transaction() as session:
                    previous = await self._latest(session, document_id)
                    if previous is not None and previous.owner_id != owner_id:
                        raise Unauthorized()

                    doc_type = requested_type or (
                        previous.document_type if previous else DocumentType.GENERIC
                    )
                    if properties is None and previous is not None and previous.type == doc_type.value:
                        props = previous.properties
                    else:
                        props = normalize_properties(doc_type, properties)
                    if visible is None:
                        is_visible = previous.visible if previous is not None else True
                    else:
                        is_visible = visible

                    version = utcnow()
                    if previous is not None and version <= previous.version:
                        version = previous.version + VERSION_STEP

                    doc = Document(
                        id=document_id,
                        version=version,
                        title=title,
                        content=content,
                        kind=doc_kind.value,
                        type=doc_type.value,
                        properties=props,
                        owner_id=owner_id,
                        visible=is_visible,
                    )
                    session.add(doc)
                    await session.flush()

                logger.info(
                    "Document version created: %s @ %s (attempt %d)",
                    document_id, version.isoformat(), attempt,
                )
                return doc

            except IntegrityError as e:
                last_error = e
                logger.warning(
                    "Version conflict on document %s (attempt %d/%d)",
                    document_id, attempt, self.max_attempts,
                )

        raise last_error

    async def truncate_after(
        self,
        document_id: str,
        timestamp: datetime,
        owner_id: str,
        as_of: Optional[datetime] = None,
    ) -> TruncationResult:
        """
        Delete every version of `document_id` newer than `timestamp`.

        Only versions that existed when the call started are removed. The upper
        bound is the later of `as_of` (default now) and the newest version seen
        inside the transaction, since a version can be stamped ahead of the
        clock. A version written concurrently after that read survives.
        """
        cutoff = to_utc(timestamp)
        snapshot = to_utc(as_of) if as_of is not None else utcnow()

        async with self._db.transaction() as session:
            result = await session.execute(
                select(Document.owner_id).where(Document.id == document_id).distinct()
            )
            owners = set(result.scalars().all())
            if not owners:
                raise NotFound("Document not found")
            if owners != {owner_id}:
                raise Unauthorized()

            newest = await session.scalar(
                select(func.max(Document.version)).where(Document.id == document_id)
            )
            if newest is not None and newest > snapshot:
                snapshot = newest

            orphaned = await session.scalar(
                select(func.count(Suggestion.id)).where(
                    Suggestion.document_id == document_id,
                    Suggestion.document_version > cutoff,
                    Suggestion.document_version <= snapshot,
                )
            )
            result = await session.execute(
                sql_delete(Document)
                .where(
                    Document.id == document_id,
                    Document.version > cutoff,
                    Document.version <= snapshot,
                )
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0

        logger.info(
            "Truncated document %s after %s: %d version(s) deleted, %d suggestion(s) orphaned",
            document_id, cutoff.isoformat(), deleted, orphaned or 0,
        )
        return TruncationResult(
            document_id=document_id,
            deleted=deleted,
            orphaned_suggestions=orphaned or 0,
        )
