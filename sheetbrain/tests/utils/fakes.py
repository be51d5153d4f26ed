from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.apps.api.container import AppServices, assemble_services
from sheetbrain.apps.api.rate_limit import RateLimiter
from sheetbrain.core.config import EMBED_DIM, Settings
from sheetbrain.domain.schemas import DocumentChunkRecord
from sheetbrain.providers.embeddings.hashing import HashEmbedder
from sheetbrain.providers.llm.base import LLMProvider
from sheetbrain.providers.llm.fake import FakeLLMProvider


def make_settings(**overrides: Any) -> Settings:
    # Ignore any local .env so tests see only explicit overrides.
    defaults: dict[str, Any] = {
        "database_url": "sqlite+aiosqlite://",
        "strict_audit": False,
        "rate_limit_enabled": True,
        "llm_provider": "fake",
        "embedding_provider": "hash",
        "ext_retry_backoff_ms": 1,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class FakeRedis:
    """In-memory stand-in for the fixed-window Lua script."""

    def __init__(self, *, window_ms: int = 60000, fail: bool = False) -> None:
        self.counts: dict[str, int] = {}
        self.window_ms = window_ms
        self.fail = fail
        self.closed = False

    async def eval(self, script: str, numkeys: int, key: str, window_ms: int) -> list[int]:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.counts[key] = self.counts.get(key, 0) + 1
        return [self.counts[key], int(window_ms)]

    async def aclose(self) -> None:
        self.closed = True


class FakeEmbedder:
    def __init__(self, vector: list[float] | None = None, error: Exception | None = None) -> None:
        self._vector = vector if vector is not None else [0.1] * EMBED_DIM
        self._error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self._error is not None:
            raise self._error
        return list(self._vector)


class FakeIndex:
    def __init__(
        self, results: list[DocumentChunkRecord] | None = None, error: Exception | None = None
    ) -> None:
        self._results = results or []
        self._error = error
        self.calls: list[tuple[str, str, int]] = []

    async def search(
        self, org_id: str, embedding: list[float], query: str, top_k: int
    ) -> list[DocumentChunkRecord]:
        self.calls.append((org_id, query, top_k))
        if self._error is not None:
            raise self._error
        return [chunk for chunk in self._results if chunk.org_id == org_id]


def chunk(chunk_id: str, score: float, *, org_id: str = "org-1", content: str | None = None) -> DocumentChunkRecord:
    return DocumentChunkRecord(
        id=chunk_id,
        org_id=org_id,
        content=content or f"content {chunk_id}",
        score=score,
    )


def build_test_services(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    settings: Settings | None = None,
    llm: LLMProvider | None = None,
    embedder: Any | None = None,
    vector_index: Any | None = None,
    keyword_index: Any | None = None,
    redis: FakeRedis | None = None,
) -> AppServices:
    settings = settings or make_settings()
    rate_limiter = None
    if settings.rate_limit_enabled:
        rate_limiter = RateLimiter.from_settings(redis or FakeRedis(), settings)
    return assemble_services(
        settings=settings,
        session_factory=session_factory,
        embedder=embedder or HashEmbedder(),
        vector_index=vector_index or FakeIndex(),
        keyword_index=keyword_index,
        llm=llm or FakeLLMProvider(),
        rate_limiter=rate_limiter,
    )
