from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from sheetbrain.services.telemetry import (
    availability,
    counters_snapshot,
    external_latency_by_integration,
    p95_latency,
)

router = APIRouter(tags=["health"])

# Rolling window for in-process request metrics.
_METRICS_WINDOW_S = 300


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/ops/metrics")
async def ops_metrics() -> dict[str, Any]:
    return {
        "window_s": _METRICS_WINDOW_S,
        "availability": availability(_METRICS_WINDOW_S),
        "p95_latency_ms": p95_latency(_METRICS_WINDOW_S),
        "audit_p95_latency_ms": p95_latency(_METRICS_WINDOW_S, path_prefix="/api/audit"),
        "integrations": external_latency_by_integration(_METRICS_WINDOW_S),
        "counters": counters_snapshot(),
    }
