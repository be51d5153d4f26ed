from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sheetbrain.domain.models import AuditUsage
from sheetbrain.persistence.db import dialect_name


def _insert_for(session: AsyncSession):
    # Both dialects expose INSERT .. ON CONFLICT with the same builder API.
    return sqlite_insert if dialect_name(session) == "sqlite" else pg_insert


async def get_month_count(session: AsyncSession, org_id: str, month_year: str) -> int:
    result = await session.execute(
        select(AuditUsage.count).where(
            AuditUsage.organization_id == org_id,
            AuditUsage.month_year == month_year,
        )
    )
    return int(result.scalar_one_or_none() or 0)


async def increment_month_count(session: AsyncSession, org_id: str, month_year: str) -> int:
    # Single statement upsert so concurrent requests never lose increments.
    insert = _insert_for(session)
    now = datetime.now(timezone.utc)
    stmt = insert(AuditUsage).values(
        organization_id=org_id,
        month_year=month_year,
        count=1,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[AuditUsage.organization_id, AuditUsage.month_year],
        set_={"count": AuditUsage.count + 1, "updated_at": now},
    ).returning(AuditUsage.count)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def try_increment_within_limit(
    session: AsyncSession, org_id: str, month_year: str, limit: int
) -> int | None:
    # Conditional upsert: returns the new count, or None when the limit is already reached.
    if limit == 0:
        return None
    insert = _insert_for(session)
    now = datetime.now(timezone.utc)
    stmt = insert(AuditUsage).values(
        organization_id=org_id,
        month_year=month_year,
        count=1,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[AuditUsage.organization_id, AuditUsage.month_year],
        set_={"count": AuditUsage.count + 1, "updated_at": now},
        where=AuditUsage.count < limit,
    ).returning(AuditUsage.count)
    result = await session.execute(stmt)
    value = result.scalar_one_or_none()
    return int(value) if value is not None else None


async def decrement_month_count(session: AsyncSession, org_id: str, month_year: str) -> bool:
    # Never drops below zero; returns False when there was nothing to release.
    result = await session.execute(
        update(AuditUsage)
        .where(
            AuditUsage.organization_id == org_id,
            AuditUsage.month_year == month_year,
            AuditUsage.count > 0,
        )
        .values(count=AuditUsage.count - 1, updated_at=datetime.now(timezone.utc))
    )
    return bool(result.rowcount)
