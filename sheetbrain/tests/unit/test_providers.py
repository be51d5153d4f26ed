from __future__ import annotations

import json

import httpx
import pytest

from sheetbrain.core.config import EMBED_DIM
from sheetbrain.core.errors import AuditInvocationError, EmbeddingError, ProviderConfigError
from sheetbrain.providers.embeddings.factory import get_embedder
from sheetbrain.providers.embeddings.hashing import HashEmbedder
from sheetbrain.providers.embeddings.openai import OpenAIEmbedder
from sheetbrain.providers.llm.factory import get_llm_provider
from sheetbrain.providers.llm.fake import FakeLLMProvider
from sheetbrain.providers.llm.openrouter import OpenRouterProvider
from sheetbrain.services.telemetry import external_latency_by_integration
from sheetbrain.tests.utils.fakes import make_settings


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_openrouter_sends_attribution_headers_and_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "[]"}}]})

    settings = make_settings(openrouter_api_key="or-key", app_base_url="https://sheets.example")
    async with _client(handler) as client:
        content = await OpenRouterProvider(client, settings).complete("system", "user")

    assert content == "[]"
    request = seen[0]
    assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer or-key"
    assert request.headers["HTTP-Referer"] == "https://sheets.example"
    assert request.headers["X-Title"] == "SheetBrain"
    body = json.loads(request.content)
    assert body["model"] == settings.openrouter_model
    assert body["max_tokens"] == 1000
    assert body["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "user"},
    ]
    assert external_latency_by_integration(300)["llm.openrouter"]["failures"] == 0


@pytest.mark.asyncio
async def test_openrouter_client_error_raises_invocation_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="invalid key")

    async with _client(handler) as client:
        provider = OpenRouterProvider(client, make_settings(openrouter_api_key="bad"))
        with pytest.raises(AuditInvocationError, match="401"):
            await provider.complete("system", "user")


@pytest.mark.asyncio
async def test_openrouter_retries_server_errors() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503, text="overloaded")
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    async with _client(handler) as client:
        provider = OpenRouterProvider(client, make_settings(openrouter_api_key="or-key"))
        assert await provider.complete("system", "user") == "ok"
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_openrouter_empty_content_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    async with _client(handler) as client:
        provider = OpenRouterProvider(client, make_settings(openrouter_api_key="or-key"))
        with pytest.raises(AuditInvocationError, match="No response content"):
            await provider.complete("system", "user")


@pytest.mark.asyncio
async def test_openrouter_requires_api_key() -> None:
    async with _client(lambda request: httpx.Response(200)) as client:
        with pytest.raises(ProviderConfigError):
            provider = OpenRouterProvider(client, make_settings(openrouter_api_key=None))
            await provider.complete("system", "user")


@pytest.mark.asyncio
async def test_openai_embedder_returns_vector() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [{"embedding": [0.25] * EMBED_DIM}]})

    settings = make_settings(embedding_provider="openai", openai_api_key="sk-test")
    async with _client(handler) as client:
        vector = await OpenAIEmbedder(client, settings).embed("=SUM(A1:A2)")

    assert len(vector) == EMBED_DIM
    assert seen[0] == {
        "model": settings.openai_embedding_model,
        "input": "=SUM(A1:A2)",
        "dimensions": EMBED_DIM,
    }


@pytest.mark.asyncio
async def test_openai_embedder_quota_error_keeps_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"code": "insufficient_quota"}})

    async with _client(handler) as client:
        embedder = OpenAIEmbedder(client, make_settings(openai_api_key="sk-test"))
        with pytest.raises(EmbeddingError) as excinfo:
            await embedder.embed("text")

    assert excinfo.value.status_code == 429
    assert "insufficient_quota" in str(excinfo.value)


@pytest.mark.asyncio
async def test_provider_factories() -> None:
    async with _client(lambda request: httpx.Response(200)) as client:
        assert isinstance(get_embedder(make_settings(embedding_provider="hash"), client), HashEmbedder)
        assert isinstance(get_embedder(make_settings(embedding_provider="openai"), client), OpenAIEmbedder)
        assert isinstance(get_llm_provider(make_settings(llm_provider="fake"), client), FakeLLMProvider)
        assert isinstance(
            get_llm_provider(make_settings(llm_provider="openrouter"), client), OpenRouterProvider
        )
        with pytest.raises(ProviderConfigError):
            get_embedder(make_settings(embedding_provider="cohere"), client)
        with pytest.raises(ProviderConfigError):
            get_llm_provider(make_settings(llm_provider="vertex"), client)
