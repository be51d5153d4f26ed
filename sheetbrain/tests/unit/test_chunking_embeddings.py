from __future__ import annotations

import math

import pytest

from sheetbrain.core.config import EMBED_DIM
from sheetbrain.ingestion.chunking import chunk_text
from sheetbrain.providers.embeddings.hashing import HashEmbedder, embed_text


def test_short_paragraphs_become_single_chunks_with_offsets() -> None:
    text = "Use XLOOKUP.\n\n  Avoid NOW() in reports.  \n\n"

    chunks = list(chunk_text(text))

    assert [chunk for chunk, _start, _end in chunks] == ["Use XLOOKUP.", "Avoid NOW() in reports."]
    for chunk, start, end in chunks:
        assert text[start:end] == chunk


def test_long_paragraph_uses_overlapping_window() -> None:
    text = "x" * 250

    chunks = list(chunk_text(text, chunk_size=100, chunk_overlap=20))

    assert [(start, end) for _chunk, start, end in chunks] == [(0, 100), (80, 180), (160, 250)]


def test_overlap_must_be_smaller_than_size() -> None:
    with pytest.raises(ValueError):
        list(chunk_text("text", chunk_size=10, chunk_overlap=10))


def test_embed_text_is_deterministic_and_normalized() -> None:
    first = embed_text("Avoid volatile functions")
    second = embed_text("avoid VOLATILE functions")

    assert len(first) == EMBED_DIM
    assert first == second
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0, rel_tol=1e-9)


def test_embed_text_without_tokens_is_zero_vector() -> None:
    assert embed_text("!!! ???") == [0.0] * EMBED_DIM


@pytest.mark.asyncio
async def test_hash_embedder_matches_embed_text() -> None:
    assert await HashEmbedder().embed("=SUM(A1:A2)") == embed_text("=SUM(A1:A2)")
