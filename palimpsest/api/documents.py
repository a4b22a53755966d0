"""
Documents API.

GET    /documents?id=&type=          — Versions of a document, or of the caller's documents of a type
GET    /documents/by-user?type=      — All versions owned by the caller
GET    /documents/{id}/public        — Current version, if visible or owned
POST   /documents?id=                — Append a new version
PATCH  /documents?id=                — Delete every version after a timestamp
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from ..core.access import ensure_readable
from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_caller, get_documents, get_publisher, signed_in
from ..core.errors import InvalidInput, NotFound, Unauthorized
from ..core.redis import RedisPublisher
from ..models.document import ApartmentProperties, Document, DocumentKind, DocumentType
from ..services import realtime
from ..services.documents import DocumentVersionStore, parse_type

logger = logging.getLogger(__name__)

documents_router = APIRouter(prefix="/documents", tags=["documents"])


# ── Response shapes: one variant per document type ───────────────────

class DocumentOutBase(BaseModel):
    id: str
    version: datetime
    title: str
    content: Optional[str] = None
    kind: DocumentKind
    owner_id: str
    visible: bool


class GenericDocumentOut(DocumentOutBase):
    type: Literal["generic"] = "generic"
    properties: Optional[dict[str, Any]] = None


class ApartmentDocumentOut(DocumentOutBase):
    type: Literal["apartment"] = "apartment"
    properties: ApartmentProperties


DocumentOut = Annotated[
    Union[GenericDocumentOut, ApartmentDocumentOut],
    Field(discriminator="type"),
]


def document_out(doc: Document) -> Union[GenericDocumentOut, ApartmentDocumentOut]:
    base = dict(
        id=doc.id,
        version=doc.version,
        title=doc.title,
        content=doc.content,
        kind=doc.document_kind,
        owner_id=doc.owner_id,
        visible=doc.visible,
    )
    doc_type = doc.document_type
    if doc_type is DocumentType.GENERIC:
        return GenericDocumentOut(**base, properties=doc.properties)
    if doc_type is DocumentType.APARTMENT:
        return ApartmentDocumentOut(
            **base, properties=ApartmentProperties.model_validate(doc.properties or {})
        )
    raise ValueError(f"Unhandled document type: {doc_type}")


class SaveDocumentRequest(BaseModel):
    title: str
    content: Optional[str] = None
    kind: DocumentKind = DocumentKind.TEXT
    type: Optional[DocumentType] = None
    properties: Optional[dict[str, Any]] = None
    visible: Optional[bool] = None


class TruncateRequest(BaseModel):
    timestamp: datetime


class TruncateResponse(BaseModel):
    id: str
    deleted: int
    orphaned_suggestions: int
    detail: str = "Deleted"


# ── Routes ───────────────────────────────────────────────────────────

@documents_router.get("", response_model=list[DocumentOut])
async def get_documents_route(
    request: Request,
    id: Optional[str] = Query(default=None),
    type: Optional[str] = Query(default=None),
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
    store: DocumentVersionStore = Depends(get_documents),
):
    """Versions of one document (by id) or of the caller's documents (by type)."""
    if not id and not type:
        raise InvalidInput("Missing document parameters")

    user = await signed_in(request, caller)
    doc_type = parse_type(type)

    documents = await store.get_versions(owner_id=user.user_id, document_id=id, type=doc_type)
    if not documents:
        raise NotFound()
    if documents[0].owner_id != user.user_id:
        raise Unauthorized()

    return [document_out(d) for d in documents]


@documents_router.get("/by-user", response_model=list[DocumentOut])
async def get_documents_by_user(
    request: Request,
    type: Optional[str] = Query(default=None),
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
    store: DocumentVersionStore = Depends(get_documents),
):
    """Every version the caller owns, optionally of one type."""
    user = await signed_in(request, caller)
    doc_type = parse_type(type)
    documents = await store.get_versions(owner_id=user.user_id, type=doc_type)
    return [document_out(d) for d in documents]


@documents_router.get("/{document_id}/public", response_model=DocumentOut)
async def get_public_document(
    document_id: str,
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
    store: DocumentVersionStore = Depends(get_documents),
):
    """Read-only current version. Anonymous callers only see visible documents."""
    doc = await store.get_latest(document_id)
    if doc is None:
        raise NotFound()
    ensure_readable(caller.user_id if caller else None, doc)
    return document_out(doc)


@documents_router.post("", response_model=DocumentOut)
async def save_document(
    request: Request,
    body: SaveDocumentRequest,
    id: Optional[str] = Query(default=None),
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
    store: DocumentVersionStore = Depends(get_documents),
    publisher: RedisPublisher = Depends(get_publisher),
):
    """Append a new version under `id`."""
    if not id:
        raise InvalidInput("Missing id")

    user = await signed_in(request, caller)
    doc = await store.create_version(
        document_id=id,
        owner_id=user.user_id,
        title=body.title,
        content=body.content,
        kind=body.kind,
        type=body.type,
        properties=body.properties,
        visible=body.visible,
    )
    await realtime.version_created(publisher, user.user_id, doc.id, doc.version)
    return document_out(doc)


@documents_router.patch("", response_model=TruncateResponse)
async def truncate_document(
    request: Request,
    body: TruncateRequest,
    id: Optional[str] = Query(default=None),
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
    store: DocumentVersionStore = Depends(get_documents),
    publisher: RedisPublisher = Depends(get_publisher),
):
    """Discard every version of `id` newer than `timestamp`."""
    if not id:
        raise InvalidInput("Missing id")

    user = await signed_in(request, caller)
    result = await store.truncate_after(id, body.timestamp, owner_id=user.user_id)
    await realtime.document_truncated(publisher, user.user_id, id, result.deleted)
    return TruncateResponse(
        id=id,
        deleted=result.deleted,
        orphaned_suggestions=result.orphaned_suggestions,
    )
