"""
Pytest configuration for the Palimpsest test suite.

Configures:
- pytest-asyncio (auto mode, see pyproject.toml)
- a throwaway SQLite database per test
- small, deterministic embedding generators
- an app + TestClient wired to the same kind of database
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from palimpsest.core.auth import Authenticator
from palimpsest.core.config import Settings
from palimpsest.core.database import Database
from palimpsest.core.flags import FeatureFlags
from palimpsest.factory import create_app
from palimpsest.models.user import User
from palimpsest.services.embeddings import EmbeddingGenerator, LocalEmbeddingGenerator, chunk_text

DIM = 8
SECRET = "test-secret"


# =============================================================================
# Embedding generators
# =============================================================================

class StaticEmbedder(EmbeddingGenerator):
    """Looks vectors up by exact text; unknown text gets a unit vector on axis 0."""

    def __init__(self, vectors: dict[str, list[float]] = None, dimension: int = DIM, chunk_size: int = 800):
        self.vectors = vectors or {}
        self.dimension = dimension
        self.chunk_size = chunk_size
        self.calls = 0

    def split(self, content: str) -> list[str]:
        return chunk_text(content, self.chunk_size)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        default = [1.0] + [0.0] * (self.dimension - 1)
        return [self.vectors.get(t, default) for t in texts]


class FailingEmbedder(EmbeddingGenerator):
    dimension = DIM

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("provider unavailable")


def unit(axis: int, dimension: int = DIM) -> list[float]:
    vec = [0.0] * dimension
    vec[axis] = 1.0
    return vec


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'palimpsest.db'}")
    database.open()
    await database.create_all()
    yield database
    await database.close()


async def seed_users(database: Database, *user_ids: str) -> None:
    async with database.transaction() as session:
        session.add_all([User(id=uid, email=f"{uid}@example.com") for uid in user_ids])


@pytest_asyncio.fixture
async def users(db):
    await seed_users(db, "alice", "bob")
    return ("alice", "bob")


# =============================================================================
# App
# =============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        AUTH_SECRET=SECRET,
        EMBEDDING_DIMENSION=DIM,
        CHUNK_SIZE=200,
        ENV="test",
    )


@pytest.fixture
def flags() -> FeatureFlags:
    return FeatureFlags(
        FF_USE_AUTH=True,
        FF_USE_REDIS=False,
        FF_EMBEDDING_PROVIDER="local",
        FF_USE_VECTOR_INDEX=False,
        FF_AUTO_CREATE_SCHEMA=True,
    )


@pytest.fixture
def client(settings, flags):
    app = create_app(settings, flags, embedder=LocalEmbeddingGenerator(DIM, chunk_size=200))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(settings, flags):
    """Build Authorization headers for a user id."""
    authenticator = Authenticator(settings, flags)

    def _headers(user_id: str) -> dict:
        token = authenticator.issue_token(user_id, f"{user_id}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers
