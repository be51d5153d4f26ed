from __future__ import annotations

import asyncio
import time

import httpx

from sheetbrain.core.config import EMBED_DIM, Settings, get_settings
from sheetbrain.core.errors import EmbeddingError, ProviderConfigError
from sheetbrain.services.resilience import retry_async, retry_policy_for
from sheetbrain.services.telemetry import record_external_call


_INTEGRATION = "embeddings.openai"


def _retryable(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and status >= 500


class OpenAIEmbedder:
    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    async def embed(self, text: str) -> list[float]:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise ProviderConfigError("OPENAI_API_KEY is required for OpenAI embeddings")

        payload = {
            "model": self._settings.openai_embedding_model,
            "input": text,
            "dimensions": EMBED_DIM,
        }
        headers = {"Authorization": f"Bearer {api_key}"}
        url = f"{self._settings.openai_base_url.rstrip('/')}/embeddings"

        async def _call() -> httpx.Response:
            response = await self._client.post(url, json=payload, headers=headers)
            if response.status_code >= 500:
                # Surface 5xx as exceptions so retry_async can retry them.
                raise EmbeddingError(
                    f"OpenAI embeddings error: {response.status_code}",
                    status_code=response.status_code,
                )
            return response

        start = time.monotonic()
        try:
            response = await retry_async(
                _call, policy=retry_policy_for(self._settings), retryable=_retryable
            )
        except (httpx.HTTPError, EmbeddingError, asyncio.TimeoutError) as exc:
            record_external_call(
                integration=_INTEGRATION,
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            if isinstance(exc, EmbeddingError):
                raise
            raise EmbeddingError("OpenAI embeddings request failed") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=False)
            # Keep the body in the message: quota errors (429 insufficient_quota) are matched on it.
            raise EmbeddingError(
                f"OpenAI embeddings error: {response.status_code} {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            embedding = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=False)
            raise EmbeddingError("OpenAI embeddings response missing data") from exc

        record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=True)
        return [float(value) for value in embedding]
