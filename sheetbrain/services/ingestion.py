from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.core.config import EMBED_DIM
from sheetbrain.core.errors import IngestionError
from sheetbrain.ingestion.chunking import chunk_text
from sheetbrain.persistence.db import session_scope
from sheetbrain.persistence.repos import chunks as chunks_repo
from sheetbrain.providers.embeddings.base import Embedder


logger = logging.getLogger(__name__)


class DocumentIngestor:
    def __init__(self, embedder: Embedder, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._embedder = embedder
        self._session_factory = session_factory

    async def ingest_document(self, content: str, metadata: dict[str, Any]) -> list[str]:
        org_id = metadata.get("org_id")
        if not org_id:
            raise IngestionError("metadata.org_id is required for ingestion")
        if not content or not content.strip():
            raise IngestionError("Content is empty")

        ingested_at = datetime.now(timezone.utc).isoformat()
        rows: list[tuple[str, str, list[float], dict[str, Any]]] = []
        for index, (chunk, start, end) in enumerate(chunk_text(content)):
            embedding = await self._embedder.embed(chunk)
            if len(embedding) != EMBED_DIM:
                raise IngestionError("chunk embedding dimension mismatch")
            chunk_metadata = {
                **metadata,
                "chunk_index": index,
                "char_start": start,
                "char_end": end,
                "ingested_at": ingested_at,
            }
            rows.append((f"doc_{uuid4().hex}", chunk, embedding, chunk_metadata))

        try:
            async with session_scope(self._session_factory) as session:
                chunk_ids = await chunks_repo.add_chunks(session, org_id=str(org_id), chunks=rows)
        except SQLAlchemyError as exc:
            raise IngestionError("failed to store document chunks") from exc

        logger.info("document_ingested org_id=%s chunks=%s", org_id, len(chunk_ids))
        return chunk_ids
