from __future__ import annotations

import logging
import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque


logger = logging.getLogger(__name__)
# Analytics events go to their own logger so they can be routed to a separate sink.
analytics_logger = logging.getLogger("sheetbrain.analytics")


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


@dataclass(frozen=True)
class ExternalCallSample:
    ts: float
    integration: str
    latency_ms: float
    success: bool


_request_samples: Deque[RequestSample] = deque(maxlen=20000)
_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_counters: dict[str, int] = defaultdict(int)


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    # Track request latency and status for availability and latency reporting.
    _request_samples.append(
        RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms)
    )


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    # Capture external call latency and outcomes.
    _external_samples.append(
        ExternalCallSample(
            ts=time.time(),
            integration=integration,
            latency_ms=latency_ms,
            success=success,
        )
    )


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def _window_samples(window_s: int) -> list[RequestSample]:
    cutoff = time.time() - window_s
    return [sample for sample in _request_samples if sample.ts >= cutoff]


def availability(window_s: int) -> float | None:
    # Calculate availability as % of non-5xx requests over the window.
    samples = _window_samples(window_s)
    if not samples:
        return None
    total = len(samples)
    failures = sum(1 for sample in samples if sample.status_code >= 500)
    return ((total - failures) / total) * 100.0


def p95_latency(window_s: int, *, path_prefix: str | None = None) -> float | None:
    samples = _window_samples(window_s)
    if path_prefix:
        samples = [sample for sample in samples if sample.path.startswith(path_prefix)]
    if not samples:
        return None
    latencies = sorted(sample.latency_ms for sample in samples)
    idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
    return latencies[idx]


def external_latency_by_integration(window_s: int) -> dict[str, dict[str, float | int | None]]:
    cutoff = time.time() - window_s
    by_integration: dict[str, list[ExternalCallSample]] = defaultdict(list)
    for sample in _external_samples:
        if sample.ts < cutoff:
            continue
        by_integration[sample.integration].append(sample)
    result: dict[str, dict[str, float | int | None]] = {}
    for integration, samples in by_integration.items():
        latencies = sorted(sample.latency_ms for sample in samples)
        p95_idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
        result[integration] = {
            "p95": latencies[p95_idx],
            "max": latencies[-1],
            "failures": sum(1 for sample in samples if not sample.success),
        }
    return result


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def reset_telemetry() -> None:
    # Clear in-process state for deterministic tests.
    _request_samples.clear()
    _external_samples.clear()
    _counters.clear()


def _format_fields(fields: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


def log_api_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    user_id: str | None = None,
    org_id: str | None = None,
    error: str | None = None,
) -> None:
    increment_counter(f"api_requests_{status_code // 100}xx")
    fields = {
        "method": method,
        "path": path,
        "status": status_code,
        "duration_ms": duration_ms,
        "user_id": user_id,
        "org_id": org_id,
        "error": error,
    }
    level = logging.WARNING if status_code >= 500 else logging.INFO
    logger.log(level, "api_request %s", _format_fields(fields))


def log_audit_event(
    *,
    user_id: str,
    org_id: str,
    formula_count: int,
    issues_found: int,
    severity: dict[str, int],
    duration_ms: int,
    rag_used: bool,
    rag_context_count: int,
    synthetic: bool,
) -> None:
    increment_counter("audits_completed")
    if synthetic:
        increment_counter("audits_synthetic")
    fields = {
        "user_id": user_id,
        "org_id": org_id,
        "formula_count": formula_count,
        "issues_found": issues_found,
        "high": severity.get("high", 0),
        "medium": severity.get("medium", 0),
        "low": severity.get("low", 0),
        "duration_ms": duration_ms,
        "rag_used": rag_used,
        "rag_context_count": rag_context_count,
        "synthetic": synthetic,
    }
    logger.info("audit_completed %s", _format_fields(fields))


def track_event(distinct_id: str, event: str, properties: dict[str, Any] | None = None) -> None:
    increment_counter(f"analytics_{event}")
    analytics_logger.info(
        "analytics_event event=%s distinct_id=%s %s",
        event,
        distinct_id,
        _format_fields(properties or {}),
    )


def capture_exception(
    exc: BaseException,
    context: dict[str, Any] | None = None,
    *,
    level: int = logging.ERROR,
) -> None:
    # Error sink: counted for dashboards and logged with the traceback.
    increment_counter("errors_captured")
    logger.log(
        level,
        "exception_captured type=%s %s",
        type(exc).__name__,
        _format_fields(context or {}),
        exc_info=exc,
    )
