from __future__ import annotations

from contextlib import asynccontextmanager
import time
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request

from sheetbrain.apps.api.container import AppServices, build_services
from sheetbrain.apps.api.errors import register_exception_handlers
from sheetbrain.apps.api.routes.audit import router as audit_router
from sheetbrain.apps.api.routes.billing import router as billing_router
from sheetbrain.apps.api.routes.health import router as health_router
from sheetbrain.apps.api.routes.ingest import router as ingest_router
from sheetbrain.apps.api.routes.policies import router as policies_router
from sheetbrain.core.config import get_settings
from sheetbrain.core.logging import configure_logging
from sheetbrain.services.telemetry import record_request


def create_app(services: AppServices | None = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Supplied containers are owned by the caller; only close what we build here.
        owned = services is None
        app.state.services = services if services is not None else build_services(get_settings())
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()

    app = FastAPI(title="SheetBrain API", lifespan=lifespan)
    if services is not None:
        # Available before startup so ASGI test transports work without lifespan events.
        app.state.services = services

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        record_request(
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=(time.monotonic() - start) * 1000.0,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(audit_router)
    app.include_router(policies_router)
    app.include_router(ingest_router)
    app.include_router(billing_router)

    return app


app = create_app()
