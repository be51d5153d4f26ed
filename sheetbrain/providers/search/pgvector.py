from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.core.config import EMBED_DIM
from sheetbrain.core.errors import RetrievalError
from sheetbrain.domain.models import DocumentChunk
from sheetbrain.domain.schemas import DocumentChunkRecord


# Upper bound on rows fetched per query regardless of caller input.
MAX_TOP_K = 50


class PgVectorIndex:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(
        self, org_id: str, embedding: list[float], query: str, top_k: int
    ) -> list[DocumentChunkRecord]:
        # query text is unused for vector search but kept for a consistent interface.
        if len(embedding) != EMBED_DIM:
            # Retrieval must fail fast if the embedding dimension doesn't match the schema.
            raise RetrievalError("query embedding dimension mismatch")

        top_k = max(1, min(int(top_k), MAX_TOP_K))
        # Use cosine distance from pgvector; lower is more similar.
        distance_expr = DocumentChunk.embedding.cosine_distance(embedding)
        stmt = (
            select(DocumentChunk, distance_expr.label("distance"))
            .where(DocumentChunk.org_id == org_id)
            # Secondary ordering keeps tie-breaking deterministic.
            .order_by(distance_expr.asc(), DocumentChunk.id.asc())
            .limit(top_k)
        )

        try:
            # Own session per search so vector and keyword queries can run concurrently.
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise RetrievalError("pgvector query failed") from exc

        items: list[DocumentChunkRecord] = []
        for chunk, distance in rows:
            # Convert cosine distance to similarity and clamp to a sane [0, 1] range.
            score = max(0.0, min(1.0, 1.0 - float(distance)))
            items.append(
                DocumentChunkRecord(
                    id=chunk.id,
                    org_id=chunk.org_id,
                    content=chunk.content,
                    score=score,
                    metadata=chunk.metadata_json or {},
                )
            )
        return items
