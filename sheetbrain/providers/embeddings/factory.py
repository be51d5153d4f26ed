from __future__ import annotations

import httpx

from sheetbrain.core.config import Settings
from sheetbrain.core.errors import ProviderConfigError
from sheetbrain.providers.embeddings.base import Embedder
from sheetbrain.providers.embeddings.hashing import HashEmbedder
from sheetbrain.providers.embeddings.openai import OpenAIEmbedder


def get_embedder(settings: Settings, client: httpx.AsyncClient) -> Embedder:
    provider = (settings.embedding_provider or "openai").lower()
    if provider == "hash":
        return HashEmbedder()
    if provider == "openai":
        return OpenAIEmbedder(client, settings)
    raise ProviderConfigError(f"Unknown embedding provider: {settings.embedding_provider}")
