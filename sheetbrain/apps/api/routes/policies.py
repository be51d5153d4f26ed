from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sheetbrain.apps.api.container import AppServices
from sheetbrain.apps.api.deps import get_services, require_principal
from sheetbrain.apps.api.rate_limit import enforce_rate_limit
from sheetbrain.domain.schemas import PolicyInput, Principal

router = APIRouter(prefix="/api/policies", tags=["policies"])


@router.get("")
async def list_policies(
    q: str | None = None,
    principal: Principal = Depends(require_principal),
    services: AppServices = Depends(get_services),
) -> dict:
    await services.policies.seed_default_policies(principal.org_id)
    if q:
        policies = await services.policies.search_policies(principal.org_id, q)
    else:
        policies = await services.policies.list_policies(principal.org_id)
    return {
        "policies": [policy.model_dump(mode="json", by_alias=True) for policy in policies],
        "count": len(policies),
    }


@router.post("")
async def create_policy(
    request: Request,
    principal: Principal = Depends(require_principal),
    services: AppServices = Depends(get_services),
) -> JSONResponse:
    await enforce_rate_limit(services.rate_limiter, principal.org_id)
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict) or not body.get("content"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing policy content")
    try:
        data = PolicyInput(
            title=body.get("title") or "Policy",
            content=body["content"],
            category=body.get("category"),
            source=body.get("source") or "api",
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid policy payload") from exc
    policy = await services.policies.add_policy(principal.org_id, data)
    return JSONResponse(
        content={"success": True, "policy": policy.model_dump(mode="json", by_alias=True)},
        status_code=status.HTTP_201_CREATED,
    )


@router.delete("/{policy_id}")
async def delete_policy(
    policy_id: str,
    principal: Principal = Depends(require_principal),
    services: AppServices = Depends(get_services),
) -> dict:
    deleted = await services.policies.delete_policy(principal.org_id, policy_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Policy not found")
    return {"success": True}
