from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sheetbrain.core.errors import AuditRequestError
from sheetbrain.services.telemetry import capture_exception


def _split_detail(detail: Any) -> tuple[str, dict[str, Any]]:
    # Extract the error string and any extra fields from HTTPException details.
    if isinstance(detail, dict):
        message = str(detail.get("error") or detail.get("message") or "Request failed")
        extra = {k: v for k, v in detail.items() if k not in {"error", "message"}}
        return message, extra
    if isinstance(detail, str):
        return detail, {}
    return "Request failed", {}


def error_payload(message: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    # Every error body carries a human-readable "error" string.
    return {"error": message, **(extra or {})}


async def audit_request_exception_handler(request: Request, exc: AuditRequestError) -> JSONResponse:
    return JSONResponse(
        content=error_payload(exc.message, exc.extra),
        status_code=exc.status_code,
        headers=exc.headers or None,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message, extra = _split_detail(exc.detail)
    headers = getattr(exc, "headers", None)
    return JSONResponse(content=error_payload(message, extra), status_code=exc.status_code, headers=headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        content=error_payload("Invalid request body", {"details": jsonable_encoder(exc.errors())}),
        status_code=400,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error body.
    capture_exception(exc, {"path": request.url.path, "method": request.method})
    return JSONResponse(content=error_payload("Internal Server Error"), status_code=500)


def register_exception_handlers(app: Any) -> None:
    app.add_exception_handler(AuditRequestError, audit_request_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
