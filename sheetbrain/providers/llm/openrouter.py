from __future__ import annotations

import asyncio
import time

import httpx

from sheetbrain.core.config import Settings, get_settings
from sheetbrain.core.errors import AuditInvocationError, ProviderConfigError, ProviderError
from sheetbrain.services.resilience import retry_async, retry_policy_for
from sheetbrain.services.telemetry import record_external_call


_INTEGRATION = "llm.openrouter"
_APP_TITLE = "SheetBrain"


def _retryable(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and (status >= 500 or status == 429)


class OpenRouterProvider:
    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None) -> None:
        self._client = client
        self._settings = settings or get_settings()

    def _headers(self) -> dict[str, str]:
        api_key = self._settings.openrouter_api_key
        if not api_key:
            raise ProviderConfigError("OPENROUTER_API_KEY is required for the openrouter provider")
        return {
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": self._settings.app_base_url,
            "X-Title": _APP_TITLE,
        }

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        headers = self._headers()
        payload = {
            "model": self._settings.openrouter_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self._settings.openrouter_max_tokens,
        }
        url = f"{self._settings.openrouter_base_url.rstrip('/')}/chat/completions"

        async def _call() -> httpx.Response:
            response = await self._client.post(url, json=payload, headers=headers)
            if response.status_code >= 500 or response.status_code == 429:
                raise ProviderError(
                    f"OpenRouter API error: {response.status_code} {response.text[:300]}",
                    status_code=response.status_code,
                )
            return response

        start = time.monotonic()
        try:
            response = await retry_async(
                _call, policy=retry_policy_for(self._settings), retryable=_retryable
            )
        except (httpx.HTTPError, ProviderError, asyncio.TimeoutError) as exc:
            record_external_call(
                integration=_INTEGRATION,
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise AuditInvocationError(str(exc) or "OpenRouter request failed") from exc

        latency_ms = (time.monotonic() - start) * 1000.0
        if response.status_code >= 400:
            record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=False)
            raise AuditInvocationError(
                f"OpenRouter API error: {response.status_code} {response.text[:300]}"
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=False)
            raise AuditInvocationError("No response content from OpenRouter") from exc
        if not content:
            record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=False)
            raise AuditInvocationError("No response content from OpenRouter")

        record_external_call(integration=_INTEGRATION, latency_ms=latency_ms, success=True)
        return str(content)
