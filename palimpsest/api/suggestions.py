"""
Suggestions API.

GET    /suggestions?documentId=&version=   — Suggestions on a document (optionally one version)
POST   /suggestions                        — Suggest an edit against an exact version
POST   /suggestions/{id}/resolve           — Resolve (once)
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..core.access import ensure_readable
from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_caller, get_documents, get_publisher, get_suggestions, get_user
from ..core.errors import NotFound
from ..core.redis import RedisPublisher
from ..services import realtime
from ..services.documents import DocumentVersionStore
from ..services.suggestions import SuggestionStore, SuggestionView

logger = logging.getLogger(__name__)

suggestions_router = APIRouter(prefix="/suggestions", tags=["suggestions"])


class SuggestionOut(BaseModel):
    id: str
    document_id: str
    document_version: datetime
    original_text: str
    suggested_text: str
    description: Optional[str] = None
    is_resolved: bool
    author_id: str
    created_at: datetime
    anchor_valid: bool


class CreateSuggestionRequest(BaseModel):
    document_id: str
    document_version: datetime
    original_text: str
    suggested_text: str
    description: Optional[str] = None


def suggestion_out(view: SuggestionView) -> SuggestionOut:
    return SuggestionOut(
        id=view.id,
        document_id=view.document_id,
        document_version=view.document_version,
        original_text=view.original_text,
        suggested_text=view.suggested_text,
        description=view.description,
        is_resolved=view.is_resolved,
        author_id=view.author_id,
        created_at=view.created_at,
        anchor_valid=view.anchor_valid,
    )


@suggestions_router.get("", response_model=list[SuggestionOut])
async def list_suggestions(
    document_id: str = Query(alias="documentId"),
    version: Optional[datetime] = Query(default=None),
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
    documents: DocumentVersionStore = Depends(get_documents),
    store: SuggestionStore = Depends(get_suggestions),
):
    """Suggestions on a document. Each one says whether its anchor version still exists."""
    current = await documents.get_latest(document_id)
    if current is None:
        raise NotFound()
    ensure_readable(caller.user_id if caller else None, current)

    if version is not None:
        views = await store.list_for_version(document_id, version)
    else:
        views = await store.list_for_document(document_id)
    return [suggestion_out(v) for v in views]


@suggestions_router.post("", response_model=SuggestionOut)
async def create_suggestion(
    body: CreateSuggestionRequest,
    user: AuthenticatedUser = Depends(get_user),
    store: SuggestionStore = Depends(get_suggestions),
    publisher: RedisPublisher = Depends(get_publisher),
):
    view = await store.create(
        document_id=body.document_id,
        document_version=body.document_version,
        original_text=body.original_text,
        suggested_text=body.suggested_text,
        author_id=user.user_id,
        description=body.description,
    )
    await realtime.suggestion_created(publisher, view.document_owner_id, view.id, view.document_id)
    return suggestion_out(view)


@suggestions_router.post("/{suggestion_id}/resolve", response_model=SuggestionOut)
async def resolve_suggestion(
    suggestion_id: str,
    user: AuthenticatedUser = Depends(get_user),
    store: SuggestionStore = Depends(get_suggestions),
    publisher: RedisPublisher = Depends(get_publisher),
):
    view = await store.resolve(suggestion_id, caller_id=user.user_id)
    await realtime.suggestion_resolved(publisher, view.author_id, view.id)
    return suggestion_out(view)
