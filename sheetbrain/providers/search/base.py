from __future__ import annotations

from typing import Protocol

from sheetbrain.domain.schemas import DocumentChunkRecord


class SearchIndex(Protocol):
    async def search(
        self, org_id: str, embedding: list[float], query: str, top_k: int
    ) -> list[DocumentChunkRecord]:
        ...
