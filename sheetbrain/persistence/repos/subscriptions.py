from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sheetbrain.domain.models import Subscription


async def get_subscription(session: AsyncSession, org_id: str) -> Subscription | None:
    result = await session.execute(
        select(Subscription).where(Subscription.organization_id == org_id)
    )
    return result.scalar_one_or_none()


async def upsert_subscription(session: AsyncSession, org_id: str, **fields: Any) -> Subscription:
    # Billing events may arrive before the org ever audited; create the row on demand.
    subscription = await get_subscription(session, org_id)
    if subscription is None:
        subscription = Subscription(organization_id=org_id, plan="free", status="active")
        session.add(subscription)
    for key, value in fields.items():
        setattr(subscription, key, value)
    subscription.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return subscription


async def update_status(session: AsyncSession, org_id: str, **fields: Any) -> bool:
    values = dict(fields)
    values["updated_at"] = datetime.now(timezone.utc)
    result = await session.execute(
        update(Subscription).where(Subscription.organization_id == org_id).values(**values)
    )
    return bool(result.rowcount)
