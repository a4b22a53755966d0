"""
Resource ingestion — content → chunks → vectors → one transaction.

The embedding call happens before the write transaction opens, so a slow
provider never holds a database transaction. The resource row and all its
embeddings then commit together: readers never see a resource without
embeddings, and any failure leaves the store unchanged.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.access import ensure_writable
from ..core.database import Database
from ..core.errors import IngestionFailure, InvalidInput, NotFound
from ..models.resource import Embedding, Resource
from .embeddings import EmbeddedChunk, EmbeddingGenerator

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Resource successfully created and embedded."


@dataclass
class IngestionResult:
    resource_id: str
    chunk_count: int
    message: str = SUCCESS_MESSAGE


@dataclass
class ResourceSummary:
    id: str
    content: str
    chunk_count: int
    created_at: datetime


class ResourceIngester:
    def __init__(self, db: Database, embedder: EmbeddingGenerator, dimension: int):
        self._db = db
        self._embedder = embedder
        self.dimension = dimension

    def _check_chunks(self, chunks: list[EmbeddedChunk]) -> None:
        if not chunks:
            raise IngestionFailure("No embeddings were produced for this content.")
        for i, chunk in enumerate(chunks):
            if len(chunk.embedding) != self.dimension:
                logger.error(
                    "Chunk %d has dimension %d, expected %d",
                    i, len(chunk.embedding), self.dimension,
                )
                raise IngestionFailure("Embedding dimension mismatch, please check the embedding model.")

    async def _write_embeddings(
        self, session: AsyncSession, resource_id: str, chunks: list[EmbeddedChunk]
    ) -> None:
        session.add_all([
            Embedding(
                resource_id=resource_id,
                chunk_index=i,
                content=chunk.content,
                embedding=[float(x) for x in chunk.embedding],
            )
            for i, chunk in enumerate(chunks)
        ])
        await session.flush()

    async def ingest(self, content: str, owner_id: Optional[str] = None) -> IngestionResult:
        if not isinstance(content, str) or not content.strip():
            raise InvalidInput("Content must be a non-empty string.")

        try:
            chunks = await self._embedder.generate(content)
        except Exception as e:
            logger.exception("Embedding generation failed: %s", e)
            raise IngestionFailure("Embedding generation failed, please try again.") from e
        self._check_chunks(chunks)

        try:
            async with self._db.transaction() as session:
                resource = Resource(content=content, owner_id=owner_id)
                session.add(resource)
                await session.flush()
                await self._write_embeddings(session, resource.id, chunks)
        except SQLAlchemyError as e:
            logger.exception("Storing resource failed: %s", e)
            raise IngestionFailure("Storing the resource failed, please try again.") from e

        logger.info("Resource ingested: %s (%d chunks, %d chars)", resource.id, len(chunks), len(content))
        return IngestionResult(resource_id=resource.id, chunk_count=len(chunks))

    async def delete(self, resource_id: str, owner_id: str) -> None:
        """Delete a resource; its embeddings go with it."""
        async with self._db.transaction() as session:
            resource = await session.get(Resource, resource_id)
            if resource is None:
                raise NotFound("Resource not found")
            ensure_writable(owner_id, resource)
            await session.delete(resource)
        logger.info("Resource deleted: %s", resource_id)

    async def list_for_owner(self, owner_id: str) -> list[ResourceSummary]:
        chunk_count = (
            select(Embedding.resource_id, func.count(Embedding.id).label("chunks"))
            .group_by(Embedding.resource_id)
            .subquery()
        )
        stmt = (
            select(Resource, chunk_count.c.chunks)
            .outerjoin(chunk_count, chunk_count.c.resource_id == Resource.id)
            .where(Resource.owner_id == owner_id)
            .order_by(Resource.created_at.desc(), Resource.id.asc())
        )
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ResourceSummary(id=r.id, content=r.content, chunk_count=chunks or 0, created_at=r.created_at)
            for r, chunks in rows
        ]
