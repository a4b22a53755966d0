"""
FastAPI dependencies. Injected into route handlers.

Components live on `app.state` (built once in the app factory); these
helpers hand them to handlers and resolve the caller.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..services.documents import DocumentVersionStore
from ..services.embeddings import EmbeddingGenerator
from ..services.ingestion import ResourceIngester
from ..services.retrieval import SemanticRetriever
from ..services.suggestions import SuggestionStore
from .auth import AuthenticatedUser, Authenticator
from .config import Settings
from .errors import Unauthenticated
from .redis import RedisPublisher


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_documents(request: Request) -> DocumentVersionStore:
    return request.app.state.documents


def get_suggestions(request: Request) -> SuggestionStore:
    return request.app.state.suggestions


def get_ingester(request: Request) -> ResourceIngester:
    return request.app.state.ingester


def get_retriever(request: Request) -> SemanticRetriever:
    return request.app.state.retriever


def get_embedder(request: Request) -> EmbeddingGenerator:
    return request.app.state.embedder


def get_publisher(request: Request) -> RedisPublisher:
    return request.app.state.publisher


def _authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


async def get_caller(
    request: Request,
    authorization: str = Header(default=""),
) -> Optional[AuthenticatedUser]:
    """Caller identity, or None for anonymous requests."""
    authenticator = _authenticator(request)
    cookie = request.cookies.get(authenticator.cookie_name, "")
    return authenticator.identify(authorization, cookie)


async def signed_in(request: Request, caller: Optional[AuthenticatedUser]) -> AuthenticatedUser:
    """
    Require a caller and make sure their user row exists.
    For handlers that must validate their input before checking auth.
    """
    if caller is None:
        raise Unauthenticated()
    await request.app.state.users.ensure(caller)
    return caller


async def get_user(
    request: Request,
    caller: Optional[AuthenticatedUser] = Depends(get_caller),
) -> AuthenticatedUser:
    """
    Resolve authenticated user from Authorization header or session cookie.
    Returns dev user if FF_USE_AUTH=false.
    """
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    await request.app.state.users.ensure(caller)
    return caller
