"""
Resources API — knowledge ingestion and semantic search.

GET    /resources/apartments   — Current version of each apartment the caller owns
GET    /resources              — Caller's resources with chunk counts
POST   /resources              — Ingest text (chunk + embed + store, all or nothing)
DELETE /resources/{id}         — Delete a resource and its embeddings
POST   /resources/search       — Top-k chunks for a query
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..core.auth import AuthenticatedUser
from ..core.config import Settings
from ..core.dependencies import (
    get_documents,
    get_embedder,
    get_ingester,
    get_publisher,
    get_retriever,
    get_settings_dep,
    get_user,
)
from ..core.redis import RedisPublisher
from ..models.document import DocumentType
from ..services import realtime
from ..services.documents import DocumentVersionStore
from ..services.embeddings import EmbeddingGenerator
from ..services.ingestion import ResourceIngester
from ..services.retrieval import SemanticRetriever
from .documents import DocumentOut, document_out

logger = logging.getLogger(__name__)

resources_router = APIRouter(prefix="/resources", tags=["resources"])


class CreateResourceRequest(BaseModel):
    content: str


class CreateResourceResponse(BaseModel):
    message: str
    resource_id: str
    chunks: int


class ResourceOut(BaseModel):
    id: str
    content_preview: str
    chunks: int
    created_at: datetime


class SearchRequest(BaseModel):
    query: str
    k: Optional[int] = Field(default=None, ge=1, le=50)
    min_score: Optional[float] = Field(default=None, ge=-1.0, le=1.0)


class SearchResult(BaseModel):
    content: str
    resource_id: str
    score: float


@resources_router.get("/apartments", response_model=list[DocumentOut])
async def list_apartments(
    user: AuthenticatedUser = Depends(get_user),
    documents: DocumentVersionStore = Depends(get_documents),
):
    apartments = await documents.list_current(user.user_id, type=DocumentType.APARTMENT)
    return [document_out(d) for d in apartments]


@resources_router.get("", response_model=list[ResourceOut])
async def list_resources(
    user: AuthenticatedUser = Depends(get_user),
    ingester: ResourceIngester = Depends(get_ingester),
):
    summaries = await ingester.list_for_owner(user.user_id)
    return [
        ResourceOut(
            id=s.id,
            content_preview=(s.content[:100] + "...") if len(s.content) > 100 else s.content,
            chunks=s.chunk_count,
            created_at=s.created_at,
        )
        for s in summaries
    ]


@resources_router.post("", response_model=CreateResourceResponse)
async def create_resource(
    body: CreateResourceRequest,
    user: AuthenticatedUser = Depends(get_user),
    ingester: ResourceIngester = Depends(get_ingester),
    publisher: RedisPublisher = Depends(get_publisher),
):
    """Ingest text. Either the resource and all its embeddings are stored, or nothing is."""
    result = await ingester.ingest(body.content, owner_id=user.user_id)
    await realtime.resource_ingested(publisher, user.user_id, result.resource_id, result.chunk_count)
    return CreateResourceResponse(
        message=result.message,
        resource_id=result.resource_id,
        chunks=result.chunk_count,
    )


@resources_router.delete("/{resource_id}")
async def delete_resource(
    resource_id: str,
    user: AuthenticatedUser = Depends(get_user),
    ingester: ResourceIngester = Depends(get_ingester),
    publisher: RedisPublisher = Depends(get_publisher),
):
    await ingester.delete(resource_id, owner_id=user.user_id)
    await realtime.resource_deleted(publisher, user.user_id, resource_id)
    return {"deleted": True, "id": resource_id}


@resources_router.post("/search", response_model=list[SearchResult])
async def search_resources(
    body: SearchRequest,
    user: AuthenticatedUser = Depends(get_user),
    retriever: SemanticRetriever = Depends(get_retriever),
    embedder: EmbeddingGenerator = Depends(get_embedder),
    settings: Settings = Depends(get_settings_dep),
):
    """Semantic search over the caller's resources."""
    results = await retriever.search_text(
        embedder,
        body.query,
        k=body.k or settings.retrieval_default_k,
        owner_id=user.user_id,
        min_score=body.min_score if body.min_score is not None else settings.retrieval_min_score,
    )
    return [SearchResult(content=r.content, resource_id=r.resource_id, score=r.score) for r in results]
