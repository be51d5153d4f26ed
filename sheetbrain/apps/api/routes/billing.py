from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from sheetbrain.apps.api.container import AppServices
from sheetbrain.apps.api.deps import get_services, require_principal
from sheetbrain.domain.schemas import Principal
from sheetbrain.services.billing import verify_signature
from sheetbrain.services.telemetry import track_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])

SIGNATURE_HEADER = "X-Billing-Signature"


@router.get("/api/billing/status")
async def billing_status(
    principal: Principal = Depends(require_principal),
    services: AppServices = Depends(get_services),
) -> dict:
    subscription = await services.quota.get_subscription(principal.org_id)
    return subscription.model_dump(mode="json", by_alias=True)


@router.get("/api/billing/usage")
async def billing_usage(
    principal: Principal = Depends(require_principal),
    services: AppServices = Depends(get_services),
) -> dict:
    stats = await services.quota.usage_stats(principal.org_id, principal.user_id)
    return {
        "auditsThisMonth": stats.audits_this_month,
        "totalAudits": stats.total_audits,
        "monthYear": stats.month_year,
    }


@router.post("/api/webhooks/billing")
async def billing_webhook(
    request: Request,
    services: AppServices = Depends(get_services),
) -> dict:
    secret = services.settings.billing_webhook_secret
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing webhook is not configured"
        )
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature")

    raw_body = await request.body()
    if not verify_signature(secret, raw_body, signature):
        logger.warning("billing_webhook_invalid_signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event payload") from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event payload")

    data_object = (event.get("data") or {}).get("object") or {}
    if not isinstance(data_object, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event payload")

    applied = await services.billing.apply_billing_event(event["type"], data_object)
    org_id = ((data_object.get("metadata") or {}).get("orgId")) or "unknown"
    track_event(str(org_id), "billing_event", {"type": event["type"], "applied": applied})
    return {"received": True}
