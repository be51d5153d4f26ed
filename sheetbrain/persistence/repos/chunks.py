from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sheetbrain.domain.models import DocumentChunk


async def add_chunks(
    session: AsyncSession,
    *,
    org_id: str,
    chunks: list[tuple[str, str, list[float], dict[str, Any]]],
) -> list[str]:
    # Each tuple is (chunk_id, content, embedding, metadata).
    now = datetime.now(timezone.utc)
    for chunk_id, content, embedding, metadata in chunks:
        session.add(
            DocumentChunk(
                id=chunk_id,
                org_id=org_id,
                content=content,
                embedding=embedding,
                metadata_json=metadata,
                created_at=now,
            )
        )
    await session.flush()
    return [chunk_id for chunk_id, _content, _embedding, _metadata in chunks]

