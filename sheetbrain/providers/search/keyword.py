from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.core.errors import RetrievalError
from sheetbrain.domain.models import DocumentChunk
from sheetbrain.domain.schemas import DocumentChunkRecord
from sheetbrain.providers.search.pgvector import MAX_TOP_K


# ts_rank normalization flag 32 maps rank to rank/(rank+1), keeping scores in [0, 1).
_RANK_NORMALIZATION = 32
_TS_CONFIG = "english"


class PgKeywordIndex:
    """Postgres full-text search over chunk content."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(
        self, org_id: str, embedding: list[float], query: str, top_k: int
    ) -> list[DocumentChunkRecord]:
        if not query.strip():
            return []

        top_k = max(1, min(int(top_k), MAX_TOP_K))
        document = func.to_tsvector(_TS_CONFIG, DocumentChunk.content)
        ts_query = func.plainto_tsquery(_TS_CONFIG, query)
        rank_expr = func.ts_rank(document, ts_query, _RANK_NORMALIZATION)
        stmt = (
            select(DocumentChunk, rank_expr.label("rank"))
            .where(DocumentChunk.org_id == org_id, document.op("@@")(ts_query))
            .order_by(rank_expr.desc(), DocumentChunk.id.asc())
            .limit(top_k)
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise RetrievalError("keyword query failed") from exc

        return [
            DocumentChunkRecord(
                id=chunk.id,
                org_id=chunk.org_id,
                content=chunk.content,
                score=max(0.0, min(1.0, float(rank))),
                metadata=chunk.metadata_json or {},
            )
            for chunk, rank in rows
        ]
