"""
Semantic retrieval over chunk embeddings.

PostgreSQL + FF_USE_VECTOR_INDEX → pgvector `<=>` (cosine distance) in SQL.
Everything else → exact cosine similarity over all vectors in numpy. Both rank
by descending similarity with the embedding id (insertion order) as
tie-breaker, so a larger k only ever appends results. The id key means the
planner may sort the distances itself instead of walking the HNSW index.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from sqlalchemy import Select, select

from ..core.database import Database
from ..core.errors import InvalidInput
from ..models.resource import Embedding, Resource
from .embeddings import EmbeddingGenerator

logger = logging.getLogger(__name__)


@dataclass
class RetrievedChunk:
    content: str
    resource_id: str
    score: float


def cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row against the query. Zero vectors score 0."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return np.clip(scores, -1.0, 1.0)


class SemanticRetriever:
    def __init__(self, db: Database, dimension: int, use_index: bool = True):
        self._db = db
        self.dimension = dimension
        self.use_index = use_index

    @property
    def uses_index(self) -> bool:
        return self.use_index and not self._db.is_sqlite

    def _validate(self, query_vector: Sequence[float], k: int) -> list[float]:
        if k < 1:
            raise InvalidInput("k must be at least 1")
        if len(query_vector) != self.dimension:
            raise InvalidInput(
                f"Query vector has dimension {len(query_vector)}, expected {self.dimension}"
            )
        return [float(x) for x in query_vector]

    async def search(
        self,
        query_vector: Sequence[float],
        k: int,
        owner_id: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> list[RetrievedChunk]:
        """Top-k chunks by cosine similarity, best first. Read-only."""
        query = self._validate(query_vector, k)
        if self.uses_index:
            results = await self._search_index(query, k, owner_id)
        else:
            results = await self._search_linear(query, k, owner_id)

        if min_score is not None:
            results = [r for r in results if r.score >= min_score]
        return results

    async def search_text(
        self,
        embedder: EmbeddingGenerator,
        query: str,
        k: int,
        owner_id: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> list[RetrievedChunk]:
        if not query or not query.strip():
            raise InvalidInput("Query must be a non-empty string.")
        vector = await embedder.embed_query(query)
        return await self.search(vector, k, owner_id=owner_id, min_score=min_score)

    def _index_query(self, query: list[float], k: int, owner_id: Optional[str]) -> Select:
        distance = Embedding.embedding.cosine_distance(query)
        stmt = select(Embedding.content, Embedding.resource_id, distance.label("distance"))
        if owner_id is not None:
            stmt = stmt.join(Resource, Resource.id == Embedding.resource_id).where(
                Resource.owner_id == owner_id
            )
        return stmt.order_by(distance, Embedding.id).limit(k)

    async def _search_index(self, query: list[float], k: int, owner_id: Optional[str]) -> list[RetrievedChunk]:
        stmt = self._index_query(query, k, owner_id)

        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        return [
            RetrievedChunk(
                content=row.content,
                resource_id=row.resource_id,
                score=max(-1.0, min(1.0, 1.0 - float(row.distance))),
            )
            for row in rows
        ]

    async def _search_linear(self, query: list[float], k: int, owner_id: Optional[str]) -> list[RetrievedChunk]:
        stmt = select(Embedding.id, Embedding.content, Embedding.resource_id, Embedding.embedding)
        if owner_id is not None:
            stmt = stmt.join(Resource, Resource.id == Embedding.resource_id).where(
                Resource.owner_id == owner_id
            )
        stmt = stmt.order_by(Embedding.id)

        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        if not rows:
            return []

        matrix = np.asarray([list(row.embedding) for row in rows], dtype=np.float64)
        scores = cosine_scores(matrix, np.asarray(query, dtype=np.float64))
        ids = np.asarray([row.id for row in rows])
        # lexsort: last key is primary → score descending, then id ascending
        order = np.lexsort((ids, -scores))[:k]
        return [
            RetrievedChunk(
                content=rows[i].content,
                resource_id=rows[i].resource_id,
                score=float(scores[i]),
            )
            for i in order
        ]
