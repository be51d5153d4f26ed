from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.core.config import PLAN_LIMITS
from sheetbrain.persistence.db import session_scope
from sheetbrain.persistence.repos import subscriptions as subscriptions_repo


logger = logging.getLogger(__name__)

EVENT_SUBSCRIPTION_CREATED = "customer.subscription.created"
EVENT_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
EVENT_PAYMENT_FAILED = "invoice.payment_failed"


def build_billing_signature(secret: str, payload: bytes) -> str:
    # Compute HMAC SHA256 signatures for billing webhook payloads.
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    expected = build_billing_signature(secret, payload)
    return hmac.compare_digest(expected, signature.strip())


def _from_epoch(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _org_id(payload: dict[str, Any]) -> str | None:
    metadata = payload.get("metadata") or {}
    if not isinstance(metadata, dict):
        return None
    org_id = metadata.get("orgId") or metadata.get("org_id")
    return str(org_id) if org_id else None


class BillingService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def apply_billing_event(self, event_type: str, payload: dict[str, Any]) -> bool:
        """Apply a subscription lifecycle event; returns False when it was ignored."""
        org_id = _org_id(payload)
        if org_id is None:
            logger.warning("billing_event_missing_org event_type=%s", event_type)
            return False

        now = datetime.now(timezone.utc)
        async with session_scope(self._session_factory) as session:
            if event_type in (EVENT_SUBSCRIPTION_CREATED, EVENT_SUBSCRIPTION_UPDATED):
                fields: dict[str, Any] = {
                    "stripe_subscription_id": payload.get("id"),
                    "status": payload.get("status") or "active",
                    "current_period_start": _from_epoch(payload.get("current_period_start")),
                    "current_period_end": _from_epoch(payload.get("current_period_end")),
                }
                if payload.get("customer"):
                    fields["stripe_customer_id"] = str(payload["customer"])
                plan = (payload.get("metadata") or {}).get("plan")
                if plan in PLAN_LIMITS:
                    fields["plan"] = plan
                await subscriptions_repo.upsert_subscription(session, org_id, **fields)
            elif event_type == EVENT_SUBSCRIPTION_DELETED:
                await subscriptions_repo.update_status(
                    session,
                    org_id,
                    status="canceled",
                    stripe_subscription_id=None,
                    cancel_at=now,
                )
            elif event_type == EVENT_PAYMENT_FAILED:
                await subscriptions_repo.update_status(session, org_id, status="past_due")
            else:
                logger.warning("billing_event_unhandled event_type=%s org_id=%s", event_type, org_id)
                return False

        logger.info("billing_event_applied event_type=%s org_id=%s", event_type, org_id)
        return True
