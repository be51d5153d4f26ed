from __future__ import annotations

import pytest

from sheetbrain.persistence.repos import subscriptions as subscriptions_repo
from sheetbrain.services.billing import (
    BillingService,
    EVENT_PAYMENT_FAILED,
    EVENT_SUBSCRIPTION_CREATED,
    EVENT_SUBSCRIPTION_DELETED,
    build_billing_signature,
    verify_signature,
)


def _subscription_payload(**overrides) -> dict:
    payload = {
        "id": "sub_123",
        "customer": "cus_456",
        "status": "active",
        "current_period_start": 1767225600,
        "current_period_end": 1769904000,
        "metadata": {"orgId": "org-1", "plan": "pro"},
    }
    payload.update(overrides)
    return payload


async def _subscription(session_factory, org_id: str):
    async with session_factory() as session:
        return await subscriptions_repo.get_subscription(session, org_id)


def test_signature_roundtrip_and_tamper_detection() -> None:
    body = b'{"type":"customer.subscription.created"}'
    signature = build_billing_signature("whsec", body)

    assert verify_signature("whsec", body, signature) is True
    assert verify_signature("whsec", body + b" ", signature) is False
    assert verify_signature("other", body, signature) is False
    assert verify_signature("whsec", body, None) is False


@pytest.mark.asyncio
async def test_subscription_created_upserts_plan(session_factory) -> None:
    service = BillingService(session_factory)

    assert await service.apply_billing_event(EVENT_SUBSCRIPTION_CREATED, _subscription_payload()) is True

    subscription = await _subscription(session_factory, "org-1")
    assert subscription.plan == "pro"
    assert subscription.status == "active"
    assert subscription.stripe_subscription_id == "sub_123"
    assert subscription.stripe_customer_id == "cus_456"
    assert subscription.current_period_end is not None


@pytest.mark.asyncio
async def test_unknown_plan_keeps_existing_plan(session_factory) -> None:
    service = BillingService(session_factory)
    await service.apply_billing_event(EVENT_SUBSCRIPTION_CREATED, _subscription_payload())

    await service.apply_billing_event(
        EVENT_SUBSCRIPTION_CREATED,
        _subscription_payload(metadata={"org_id": "org-1", "plan": "platinum"}, status="trialing"),
    )

    subscription = await _subscription(session_factory, "org-1")
    assert subscription.plan == "pro"
    assert subscription.status == "trialing"


@pytest.mark.asyncio
async def test_subscription_deleted_cancels(session_factory) -> None:
    service = BillingService(session_factory)
    await service.apply_billing_event(EVENT_SUBSCRIPTION_CREATED, _subscription_payload())

    await service.apply_billing_event(EVENT_SUBSCRIPTION_DELETED, {"metadata": {"orgId": "org-1"}})

    subscription = await _subscription(session_factory, "org-1")
    assert subscription.status == "canceled"
    assert subscription.stripe_subscription_id is None
    assert subscription.cancel_at is not None


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due(session_factory) -> None:
    service = BillingService(session_factory)
    await service.apply_billing_event(EVENT_SUBSCRIPTION_CREATED, _subscription_payload())

    await service.apply_billing_event(EVENT_PAYMENT_FAILED, {"metadata": {"orgId": "org-1"}})

    assert (await _subscription(session_factory, "org-1")).status == "past_due"


@pytest.mark.asyncio
async def test_unhandled_or_orgless_events_are_ignored(session_factory) -> None:
    service = BillingService(session_factory)

    assert await service.apply_billing_event("charge.refunded", {"metadata": {"orgId": "org-1"}}) is False
    assert await service.apply_billing_event(EVENT_SUBSCRIPTION_CREATED, {"id": "sub_1"}) is False
    assert await _subscription(session_factory, "org-1") is None
