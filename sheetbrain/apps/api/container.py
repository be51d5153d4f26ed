from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.apps.api.rate_limit import RateLimiter, build_redis
from sheetbrain.core.config import Settings
from sheetbrain.persistence.db import build_engine, build_session_factory
from sheetbrain.providers.embeddings.base import Embedder
from sheetbrain.providers.embeddings.factory import get_embedder
from sheetbrain.providers.llm.base import LLMProvider
from sheetbrain.providers.llm.factory import get_llm_provider
from sheetbrain.providers.search.base import SearchIndex
from sheetbrain.providers.search.keyword import PgKeywordIndex
from sheetbrain.providers.search.pgvector import PgVectorIndex
from sheetbrain.services.audit_pipeline import AuditPipeline
from sheetbrain.services.auditor import FormulaAuditor
from sheetbrain.services.billing import BillingService
from sheetbrain.services.ingestion import DocumentIngestor
from sheetbrain.services.policies import PolicyService
from sheetbrain.services.quota import QuotaService
from sheetbrain.services.retrieval import Retriever


@dataclass
class AppServices:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    policies: PolicyService
    quota: QuotaService
    billing: BillingService
    ingestor: DocumentIngestor
    pipeline: AuditPipeline
    rate_limiter: RateLimiter | None = None
    # Shutdown hooks for clients owned by this container (engine, Redis, httpx).
    closers: list[Callable[[], Awaitable[Any]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for closer in reversed(self.closers):
            await closer()
        self.closers.clear()


def assemble_services(
    *,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    embedder: Embedder,
    vector_index: SearchIndex,
    keyword_index: SearchIndex | None,
    llm: LLMProvider,
    rate_limiter: RateLimiter | None,
) -> AppServices:
    # Wire services from already-built clients; tests pass fakes here.
    policies = PolicyService(session_factory)
    quota = QuotaService(session_factory)
    retriever = Retriever(
        embedder,
        vector_index,
        keyword_index,
        hybrid=settings.hybrid_search_enabled,
    )
    pipeline = AuditPipeline(
        settings=settings,
        session_factory=session_factory,
        policies=policies,
        retriever=retriever,
        auditor=FormulaAuditor(llm),
        quota=quota,
        rate_limiter=rate_limiter,
    )
    return AppServices(
        settings=settings,
        session_factory=session_factory,
        policies=policies,
        quota=quota,
        billing=BillingService(session_factory),
        ingestor=DocumentIngestor(embedder, session_factory),
        pipeline=pipeline,
        rate_limiter=rate_limiter,
    )


def build_services(settings: Settings) -> AppServices:
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    http_client = httpx.AsyncClient(timeout=settings.ext_call_timeout_ms / 1000.0)
    redis = build_redis(settings)

    rate_limiter = RateLimiter.from_settings(redis, settings) if settings.rate_limit_enabled else None
    services = assemble_services(
        settings=settings,
        session_factory=session_factory,
        embedder=get_embedder(settings, http_client),
        vector_index=PgVectorIndex(session_factory),
        keyword_index=PgKeywordIndex(session_factory),
        llm=get_llm_provider(settings, http_client),
        rate_limiter=rate_limiter,
    )
    services.closers.extend([engine.dispose, redis.aclose, http_client.aclose])
    return services
