from __future__ import annotations

import asyncio

import pytest

from sheetbrain.core.errors import ProviderError
from sheetbrain.services.resilience import RetryPolicy, retry_async, run_best_effort
from sheetbrain.services.telemetry import counters_snapshot


POLICY = RetryPolicy(timeout_ms=1000, max_attempts=3, backoff_ms=1)


@pytest.mark.asyncio
async def test_retry_async_retries_transient_failures() -> None:
    attempts = {"count": 0}

    async def flaky() -> str:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise TimeoutError("slow upstream")
        return "ok"

    assert await retry_async(flaky, policy=POLICY) == "ok"
    assert attempts["count"] == 3
    assert counters_snapshot()["external_retries_total"] == 2


@pytest.mark.asyncio
async def test_retry_async_gives_up_after_max_attempts() -> None:
    attempts = {"count": 0}

    async def down() -> None:
        attempts["count"] += 1
        raise ProviderError("bad gateway", status_code=502)

    with pytest.raises(ProviderError):
        await retry_async(down, policy=POLICY)
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_client_errors() -> None:
    attempts = {"count": 0}

    async def rejected() -> None:
        attempts["count"] += 1
        raise ProviderError("bad request", status_code=400)

    with pytest.raises(ProviderError):
        await retry_async(rejected, policy=POLICY)
    assert attempts["count"] == 1


@pytest.mark.asyncio
async def test_run_best_effort_swallows_failures() -> None:
    async def broken() -> None:
        raise RuntimeError("disk full")

    assert await run_best_effort("persist_audit_log", broken) is None
    assert counters_snapshot()["best_effort_failed_persist_audit_log"] == 1


@pytest.mark.asyncio
async def test_run_best_effort_returns_result() -> None:
    async def work() -> int:
        return 7

    assert await run_best_effort("record_usage", work) == 7


@pytest.mark.asyncio
async def test_retry_async_retries_wait_for_timeouts() -> None:
    attempts = {"count": 0}

    async def slow_then_fast() -> str:
        attempts["count"] += 1
        if attempts["count"] == 1:
            await asyncio.sleep(1)
        return "ok"

    policy = RetryPolicy(timeout_ms=20, max_attempts=2, backoff_ms=1)

    assert await retry_async(slow_then_fast, policy=policy) == "ok"
    assert attempts["count"] == 2
