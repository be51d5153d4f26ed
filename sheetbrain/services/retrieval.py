from __future__ import annotations

import asyncio
import logging

from sheetbrain.core.config import EMBED_DIM
from sheetbrain.core.errors import RetrievalError
from sheetbrain.domain.schemas import DocumentChunkRecord, RetrievalOptions
from sheetbrain.providers.embeddings.base import Embedder
from sheetbrain.providers.search.base import SearchIndex
from sheetbrain.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

# Provider throttling is expected under load and only worth an INFO line.
_QUOTA_MARKERS = ("429", "quota", "rate limit", "insufficient")


def is_quota_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _QUOTA_MARKERS)


def merge_results(
    batches: list[list[DocumentChunkRecord]], *, top_k: int, min_confidence: float
) -> list[DocumentChunkRecord]:
    # Keep the best score per chunk id across vector and keyword hits.
    best: dict[str, DocumentChunkRecord] = {}
    for batch in batches:
        for chunk in batch:
            current = best.get(chunk.id)
            if current is None or chunk.score > current.score:
                best[chunk.id] = chunk
    ranked = sorted(best.values(), key=lambda chunk: (-chunk.score, chunk.id))
    return [chunk for chunk in ranked if chunk.score >= min_confidence][: max(top_k, 0)]


class Retriever:
    def __init__(
        self,
        embedder: Embedder,
        vector_index: SearchIndex,
        keyword_index: SearchIndex | None = None,
        *,
        hybrid: bool = True,
    ) -> None:
        self._embedder = embedder
        self._vector_index = vector_index
        self._keyword_index = keyword_index
        self._hybrid = hybrid and keyword_index is not None

    async def _search(self, query: str, options: RetrievalOptions) -> list[DocumentChunkRecord]:
        embedding = await self._embedder.embed(query)
        if len(embedding) != EMBED_DIM:
            raise RetrievalError(
                f"embedding dimension mismatch: expected {EMBED_DIM}, got {len(embedding)}"
            )
        searches = [self._vector_index.search(options.org_id, embedding, query, options.top_k)]
        if self._hybrid and self._keyword_index is not None:
            searches.append(self._keyword_index.search(options.org_id, embedding, query, options.top_k))
        batches = await asyncio.gather(*searches)
        return merge_results(
            list(batches), top_k=options.top_k, min_confidence=options.min_confidence
        )

    async def retrieve_relevant_context(
        self, query: str, options: RetrievalOptions
    ) -> list[DocumentChunkRecord]:
        """Return org-scoped chunks relevant to ``query``.

        Never raises: any embedding or search failure yields an empty list so
        the audit proceeds without retrieved context.
        """
        try:
            return await self._search(query, options)
        except Exception as exc:  # noqa: BLE001 - retrieval must never fail the audit
            increment_counter("retrieval_failures_total")
            if is_quota_error(exc):
                logger.info("retrieval_skipped_quota org_id=%s error=%s", options.org_id, exc)
            else:
                logger.warning(
                    "retrieval_failed org_id=%s error=%s", options.org_id, exc, exc_info=exc
                )
            return []
