from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from sheetbrain.apps.api.container import AppServices
from sheetbrain.apps.api.deps import get_services, resolve_principal
from sheetbrain.domain.schemas import Principal

router = APIRouter(tags=["audit"])


@router.post("/api/audit")
async def audit_formulas(
    request: Request,
    principal: Principal | None = Depends(resolve_principal),
    services: AppServices = Depends(get_services),
) -> JSONResponse:
    # The body is read raw so identity, throttling and quota are checked before validation.
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    response = await services.pipeline.run(principal, payload)
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True))
