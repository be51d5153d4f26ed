from __future__ import annotations

import httpx

from sheetbrain.core.config import Settings
from sheetbrain.core.errors import ProviderConfigError
from sheetbrain.providers.llm.base import LLMProvider
from sheetbrain.providers.llm.fake import FakeLLMProvider
from sheetbrain.providers.llm.openrouter import OpenRouterProvider


def get_llm_provider(settings: Settings, client: httpx.AsyncClient) -> LLMProvider:
    provider = (settings.llm_provider or "openrouter").lower()
    if provider == "fake":
        return FakeLLMProvider()
    if provider == "openrouter":
        return OpenRouterProvider(client, settings)
    raise ProviderConfigError(f"Unknown LLM provider: {settings.llm_provider}")
