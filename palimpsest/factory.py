"""
FastAPI application factory.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from .core.access import AccessGate, Outcome
from .core.auth import Authenticator
from .core.config import Settings, get_settings
from .core.database import Database
from .core.errors import PalimpsestError
from .core.flags import FeatureFlags, get_flags
from .core.redis import RedisPublisher
from .models.resource import EMBEDDING_DIMENSION
from .services.documents import DocumentVersionStore
from .services.embeddings import EmbeddingGenerator, get_embedding_generator
from .services.ingestion import ResourceIngester
from .services.retrieval import SemanticRetriever
from .services.suggestions import SuggestionStore
from .services.users import UserDirectory
from .api.router import router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    flags: Optional[FeatureFlags] = None,
    embedder: Optional[EmbeddingGenerator] = None,
) -> FastAPI:
    settings = settings or get_settings()
    flags = flags or get_flags()

    # ── Components ───────────────────────────────────────────────
    db = Database(settings.database_url, echo=settings.debug)
    embedder = embedder or get_embedding_generator(settings, flags)
    authenticator = Authenticator(settings, flags)
    gate = AccessGate(
        api_prefix=settings.api_prefix,
        app_root=settings.app_root,
        home_path=settings.home_path,
        login_path=settings.login_path,
        register_path=settings.register_path,
    )
    publisher = RedisPublisher(settings.redis_url, enabled=flags.use_redis)

    # The vector column type is fixed when the models are imported
    if not db.is_sqlite and settings.embedding_dimension != EMBEDDING_DIMENSION:
        logger.warning(
            "EMBEDDING_DIMENSION=%d does not match the embeddings column vector(%d); "
            "the column follows the process environment",
            settings.embedding_dimension, EMBEDDING_DIMENSION,
        )

    # ── Startup / shutdown ───────────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting Palimpsest (env=%s)", settings.env)

        db.open()
        if flags.auto_create_schema:
            await db.create_all()

        logger.info(
            "Flags: auth=%s redis=%s embeddings=%s vector_index=%s",
            flags.use_auth, flags.use_redis, flags.embedding_provider, flags.use_vector_index,
        )
        logger.info("Palimpsest is ready")

        yield

        await embedder.close()
        await publisher.close()
        await db.close()
        logger.info("Palimpsest shut down")

    app = FastAPI(
        title="Palimpsest",
        description="Versioned documents, suggestions and semantic retrieval",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.flags = flags
    app.state.db = db
    app.state.embedder = embedder
    app.state.authenticator = authenticator
    app.state.gate = gate
    app.state.publisher = publisher
    app.state.users = UserDirectory(db)
    app.state.documents = DocumentVersionStore(db, max_attempts=settings.version_write_attempts)
    app.state.suggestions = SuggestionStore(db)
    app.state.ingester = ResourceIngester(db, embedder, dimension=settings.embedding_dimension)
    app.state.retriever = SemanticRetriever(
        db, dimension=settings.embedding_dimension, use_index=flags.use_vector_index
    )

    # ── Errors ───────────────────────────────────────────────────
    @app.exception_handler(PalimpsestError)
    async def palimpsest_error_handler(request: Request, exc: PalimpsestError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.debug("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"detail": "Invalid request"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": PalimpsestError.default_message})

    # ── Access gate ──────────────────────────────────────────────
    @app.middleware("http")
    async def access_gate(request: Request, call_next):
        caller = authenticator.identify(
            request.headers.get("authorization", ""),
            request.cookies.get(authenticator.cookie_name, ""),
        )
        decision = gate.authorize(caller, request.url.path)
        if decision.outcome is Outcome.REDIRECT:
            return RedirectResponse(url=decision.target, status_code=307)
        if decision.outcome is Outcome.DENY:
            return JSONResponse(status_code=decision.status_code or 401, content={"detail": "Unauthorized"})
        return await call_next(request)

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if origins != ["*"] else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Home ─────────────────────────────────────────────────────
    @app.get(settings.home_path, response_class=HTMLResponse)
    async def home():
        return HTMLResponse(content="<h1>Palimpsest is running.</h1>")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router, prefix=settings.api_prefix)

    return app
