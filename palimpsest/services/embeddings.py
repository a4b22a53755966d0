"""
Embedding generators.

An EmbeddingGenerator owns chunking: `generate()` splits content and returns
ordered (chunk, vector) pairs, `embed_query()` embeds one search string.

Providers:
  - openai → OpenAI-compatible /embeddings endpoint over a pooled httpx client,
             retry with exponential backoff + jitter on 429/5xx/timeouts
  - local  → deterministic hashed bag-of-words vectors, no network
"""

import asyncio
import hashlib
import logging
import math
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from ..core.config import Settings
from ..core.flags import FeatureFlags

logger = logging.getLogger(__name__)

CHUNK_SIZE = 800

# Preferred cut points, strongest first
_BOUNDARIES = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ")


@dataclass
class EmbeddedChunk:
    content: str
    embedding: list[float]


def chunk_text(content: str, chunk_size: int = CHUNK_SIZE) -> list[str]:
    """
    Split text into chunks of at most `chunk_size` characters.

    Each window is cut at the strongest boundary in its second half. Chunks do
    not overlap and are not stripped, so joining them gives back the input
    (minus whitespace-only chunks).
    """
    if not content:
        return []
    chunk_size = max(1, chunk_size)

    chunks = []
    start = 0
    length = len(content)
    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            window = content[start:end]
            for sep in _BOUNDARIES:
                cut = window.rfind(sep)
                if cut > chunk_size // 2:
                    end = start + cut + len(sep)
                    break
        chunks.append(content[start:end])
        start = end

    return [c for c in chunks if c.strip()]


class EmbeddingGenerator(ABC):
    dimension: int

    @abstractmethod
    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of strings, one vector per input, same order."""
        ...

    def split(self, content: str) -> list[str]:
        return chunk_text(content)

    async def generate(self, content: str) -> list[EmbeddedChunk]:
        chunks = self.split(content)
        if not chunks:
            return []
        vectors = await self.embed_texts(chunks)
        if len(vectors) != len(chunks):
            raise ValueError(f"Expected {len(chunks)} embeddings, got {len(vectors)}")
        return [EmbeddedChunk(content=c, embedding=v) for c, v in zip(chunks, vectors)]

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed_texts([text.replace("\n", " ")])
        return vectors[0]

    async def close(self) -> None:
        return None


# ── Local provider ───────────────────────────────────────────────────

_TOKEN = re.compile(r"\w+", re.UNICODE)


class LocalEmbeddingGenerator(EmbeddingGenerator):
    """Feature-hashing embedder. Same text, same vector; shared words → closer vectors."""

    def __init__(self, dimension: int, chunk_size: int = CHUNK_SIZE):
        self.dimension = dimension
        self.chunk_size = chunk_size

    def split(self, content: str) -> list[str]:
        return chunk_text(content, self.chunk_size)

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            h = int.from_bytes(digest, "big")
            sign = 1.0 if (h >> 63) & 1 else -1.0
            vec[h % self.dimension] += sign
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0:
            return vec
        return [v / norm for v in vec]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]


# ── OpenAI provider ──────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


class OpenAIEmbeddingGenerator(EmbeddingGenerator):
    def __init__(
        self,
        api_key: str,
        model: str,
        dimension: int,
        base_url: str = "https://api.openai.com/v1",
        chunk_size: int = CHUNK_SIZE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        self._client = client

    def split(self, content: str) -> list[str]:
        return chunk_text(content, self.chunk_size)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(connect=10, read=60, write=30, pool=10),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._client

    async def _retry_request(self, url: str, payload: dict) -> httpx.Response:
        """POST with exponential backoff + jitter."""
        client = self._get_client()
        headers = {"Authorization": f"Bearer {self.api_key}"}
        last_exc: Optional[Exception] = None

        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await client.post(url, json=payload, headers=headers)
                if resp.status_code not in RETRYABLE_STATUS:
                    if resp.status_code >= 400:
                        logger.error("Embedding API error %d: %s", resp.status_code, resp.text[:500])
                    resp.raise_for_status()
                    return resp

                retry_after = resp.headers.get("retry-after")
                delay = float(retry_after) if retry_after else min(
                    MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1)
                )
                logger.warning(
                    "Embedding API %d (attempt %d/%d), retrying in %.1fs",
                    resp.status_code, attempt + 1, MAX_RETRIES + 1, delay,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as e:
                delay = min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))
                logger.warning(
                    "Embedding API timeout (attempt %d/%d), retrying in %.1fs",
                    attempt + 1, MAX_RETRIES + 1, delay,
                )
                last_exc = e

            if attempt < MAX_RETRIES:
                await asyncio.sleep(delay)

        raise last_exc or RuntimeError("Embedding request failed after retries")

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY is not configured")

        resp = await self._retry_request(
            f"{self.base_url}/embeddings",
            {"model": self.model, "input": texts},
        )
        data = sorted(resp.json().get("data", []), key=lambda d: d.get("index", 0))
        return [item["embedding"] for item in data]

    async def close(self) -> None:
        """Close the pooled HTTP client. Call on app shutdown."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def get_embedding_generator(settings: Settings, flags: FeatureFlags) -> EmbeddingGenerator:
    provider = flags.embedding_provider.lower()
    if provider == "local":
        return LocalEmbeddingGenerator(settings.embedding_dimension, settings.chunk_size)
    if provider == "openai":
        return OpenAIEmbeddingGenerator(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            base_url=settings.openai_base_url,
            chunk_size=settings.chunk_size,
        )
    raise ValueError(f"Unknown embedding provider: {flags.embedding_provider}")
