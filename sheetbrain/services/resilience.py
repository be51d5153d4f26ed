from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from sheetbrain.core.config import Settings, get_settings
from sheetbrain.services.telemetry import capture_exception, increment_counter


logger = logging.getLogger(__name__)

T = TypeVar("T")

# asyncio.TimeoutError is distinct from the builtin before Python 3.11.
TransientException = (TimeoutError, asyncio.TimeoutError, OSError)


def _default_retryable(exc: Exception) -> bool:
    # Retry only transient network/timeout failures by default.
    if isinstance(exc, TransientException):
        return True
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status >= 500:
        return True
    return False


@dataclass(frozen=True)
class RetryPolicy:
    # Centralize external retry behavior for deterministic policy changes.
    timeout_ms: int
    max_attempts: int
    backoff_ms: int


def retry_policy_for(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        timeout_ms=settings.ext_call_timeout_ms,
        max_attempts=settings.ext_retry_max_attempts,
        backoff_ms=settings.ext_retry_backoff_ms,
    )


def default_retry_policy() -> RetryPolicy:
    return retry_policy_for(get_settings())


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    retryable: Callable[[Exception], bool] | None = None,
) -> T:
    # Retry helper with jittered backoff for transient failures only.
    policy = policy or default_retry_policy()
    retryable = retryable or _default_retryable
    attempt = 1
    while True:
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout_ms / 1000.0)
        except Exception as exc:  # noqa: BLE001 - caller handles non-transient failures
            if attempt >= max(policy.max_attempts, 1) or not retryable(exc):
                raise
            # Track retry volume so operators can detect retry storms.
            increment_counter("external_retries_total")
            jitter = random.uniform(0.5, 1.5)
            sleep_s = (policy.backoff_ms / 1000.0) * (2 ** (attempt - 1)) * jitter
            await asyncio.sleep(sleep_s)
            attempt += 1


async def run_best_effort(
    name: str,
    func: Callable[[], Awaitable[T]],
    *,
    context: dict[str, Any] | None = None,
) -> T | None:
    """Run a supporting side effect whose failure must not fail the request.

    Failures are logged at WARNING, reported to the error sink and swallowed;
    the caller gets ``None`` back instead of the result.
    """
    try:
        return await func()
    except Exception as exc:  # noqa: BLE001 - supporting steps are non-fatal by contract
        increment_counter(f"best_effort_failed_{name}")
        capture_exception(exc, {"task": name, **(context or {})}, level=logging.WARNING)
        return None
