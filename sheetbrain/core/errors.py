from __future__ import annotations

from typing import Any


class SheetBrainError(Exception):
    """Base error for SheetBrain."""


class ProviderConfigError(SheetBrainError):
    """Missing or invalid provider configuration."""


class ProviderError(SheetBrainError):
    """External provider request failure."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingError(ProviderError):
    """Embedding provider failure."""


class RetrievalError(SheetBrainError):
    """Retrieval layer failure."""


class AuditInvocationError(SheetBrainError):
    """LLM audit call failed or returned an unusable payload."""


class IngestionError(SheetBrainError):
    """Document ingestion failure."""


class DatabaseError(SheetBrainError):
    """Database layer failure."""


class RateLimiterUnavailableError(SheetBrainError):
    """Rate limit backend unavailable while failing closed."""


class AuditRequestError(SheetBrainError):
    """Client-visible audit rejection with an HTTP status and extra body fields."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra or {}
        self.headers = headers or {}
