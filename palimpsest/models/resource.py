"""
Resources and their chunk embeddings.

A resource's content is fixed once embedded; re-ingesting creates a new
resource. Embeddings are cascade-deleted with their resource.
"""

from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import String, Text, Integer, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.config import get_settings
from ..core.database import Base
from .base import RecordBase

# Read from the environment at import; settings passed to create_app do not
# change the column type.
EMBEDDING_DIMENSION = get_settings().embedding_dimension

# pgvector on PostgreSQL, plain JSON arrays on SQLite (tests, local runs)
EmbeddingVector = Vector(EMBEDDING_DIMENSION).with_variant(JSON(), "sqlite")


class Resource(RecordBase):
    __tablename__ = "resources"

    content: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[Optional[str]] = mapped_column(
        "user_id", String(191), ForeignKey("user.id"), nullable=True, index=True
    )

    embeddings: Mapped[list["Embedding"]] = relationship(
        back_populates="resource",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Embedding.chunk_index",
    )


class Embedding(Base):
    __tablename__ = "embeddings"

    # Autoincrement id doubles as insertion order for tie-breaking in search
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_id: Mapped[str] = mapped_column(
        String(191), ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding = mapped_column(EmbeddingVector, nullable=False)

    resource: Mapped["Resource"] = relationship(back_populates="embeddings")


_settings = get_settings()
Index(
    "embedding_index",
    Embedding.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": _settings.hnsw_m, "ef_construction": _settings.hnsw_ef_construction},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)
