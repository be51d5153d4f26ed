from __future__ import annotations

import logging

import pytest

from sheetbrain.core.errors import EmbeddingError
from sheetbrain.domain.schemas import RetrievalOptions
from sheetbrain.services.retrieval import Retriever, is_quota_error, merge_results
from sheetbrain.tests.utils.fakes import FakeEmbedder, FakeIndex, chunk


def test_merge_keeps_best_score_and_orders_descending() -> None:
    vector_hits = [chunk("a", 0.9), chunk("b", 0.6), chunk("c", 0.7)]
    keyword_hits = [chunk("b", 0.95), chunk("d", 0.4)]

    merged = merge_results([vector_hits, keyword_hits], top_k=8, min_confidence=0.55)

    assert [(item.id, item.score) for item in merged] == [("b", 0.95), ("a", 0.9), ("c", 0.7)]


def test_merge_filters_threshold_and_truncates() -> None:
    hits = [chunk(f"c{idx}", 0.6 + idx / 100) for idx in range(10)] + [chunk("low", 0.54)]

    merged = merge_results([hits], top_k=3, min_confidence=0.55)

    assert [item.id for item in merged] == ["c9", "c8", "c7"]
    assert all(item.score >= 0.55 for item in merged)


def test_merge_breaks_score_ties_by_id() -> None:
    merged = merge_results([[chunk("z", 0.8), chunk("m", 0.8)]], top_k=5, min_confidence=0.0)

    assert [item.id for item in merged] == ["m", "z"]


@pytest.mark.asyncio
async def test_hybrid_retrieval_queries_both_indices() -> None:
    vector = FakeIndex([chunk("a", 0.8)])
    keyword = FakeIndex([chunk("a", 0.9), chunk("b", 0.7), chunk("x", 0.99, org_id="org-2")])
    retriever = Retriever(FakeEmbedder(), vector, keyword, hybrid=True)

    results = await retriever.retrieve_relevant_context("=SUM(A1:A2)", RetrievalOptions(org_id="org-1"))

    assert [(item.id, item.score) for item in results] == [("a", 0.9), ("b", 0.7)]
    assert vector.calls == [("org-1", "=SUM(A1:A2)", 8)]
    assert keyword.calls == [("org-1", "=SUM(A1:A2)", 8)]


@pytest.mark.asyncio
async def test_keyword_index_skipped_when_hybrid_disabled() -> None:
    keyword = FakeIndex([chunk("b", 0.9)])
    retriever = Retriever(FakeEmbedder(), FakeIndex([chunk("a", 0.8)]), keyword, hybrid=False)

    results = await retriever.retrieve_relevant_context("q", RetrievalOptions(org_id="org-1"))

    assert [item.id for item in results] == ["a"]
    assert keyword.calls == []


@pytest.mark.asyncio
async def test_embedding_failure_returns_empty_list(caplog) -> None:
    retriever = Retriever(FakeEmbedder(error=RuntimeError("connection reset")), FakeIndex())

    with caplog.at_level(logging.INFO, logger="sheetbrain.services.retrieval"):
        results = await retriever.retrieve_relevant_context("q", RetrievalOptions(org_id="org-1"))

    assert results == []
    assert any(record.levelno == logging.WARNING for record in caplog.records)


@pytest.mark.asyncio
async def test_quota_errors_are_logged_at_info(caplog) -> None:
    error = EmbeddingError("OpenAI embeddings error: 429 insufficient_quota", status_code=429)
    retriever = Retriever(FakeEmbedder(error=error), FakeIndex())

    with caplog.at_level(logging.INFO, logger="sheetbrain.services.retrieval"):
        results = await retriever.retrieve_relevant_context("q", RetrievalOptions(org_id="org-1"))

    assert results == []
    levels = {record.levelno for record in caplog.records}
    assert logging.INFO in levels
    assert logging.WARNING not in levels


@pytest.mark.asyncio
async def test_index_failure_returns_empty_list() -> None:
    retriever = Retriever(
        FakeEmbedder(),
        FakeIndex([chunk("a", 0.9)]),
        FakeIndex(error=RuntimeError("index unavailable")),
    )

    assert await retriever.retrieve_relevant_context("q", RetrievalOptions(org_id="org-1")) == []


@pytest.mark.asyncio
async def test_dimension_mismatch_returns_empty_list() -> None:
    retriever = Retriever(FakeEmbedder(vector=[0.1, 0.2]), FakeIndex([chunk("a", 0.9)]))

    assert await retriever.retrieve_relevant_context("q", RetrievalOptions(org_id="org-1")) == []


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("HTTP 429", True),
        ("You exceeded your current quota", True),
        ("Rate limit reached", True),
        ("insufficient_quota", True),
        ("connection refused", False),
    ],
)
def test_is_quota_error(message: str, expected: bool) -> None:
    assert is_quota_error(RuntimeError(message)) is expected
