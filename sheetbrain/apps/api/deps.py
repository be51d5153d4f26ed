from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from sheetbrain.apps.api.container import AppServices
from sheetbrain.domain.schemas import Principal


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def resolve_principal(request: Request) -> Principal | None:
    # Identity is asserted upstream; both user and org headers are required.
    user_id = (request.headers.get("x-user-id") or "").strip()
    org_id = (request.headers.get("x-user-org") or "").strip()
    if not user_id or not org_id:
        return None
    email = (request.headers.get("x-user-email") or "").strip() or None
    return Principal(user_id=user_id, org_id=org_id, email=email)


def require_principal(principal: Principal | None = Depends(resolve_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return principal
