from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sheetbrain.domain.models import Policy
from sheetbrain.domain.schemas import PolicyInput, PolicyRecord


def to_record(row: Policy) -> PolicyRecord:
    return PolicyRecord(
        id=row.id,
        org_id=row.organization_id,
        title=row.title,
        content=row.content,
        category=row.category,
        created_at=row.created_at,
        updated_at=row.updated_at,
        source=row.source,
    )


async def count_policies(session: AsyncSession, org_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(Policy).where(Policy.organization_id == org_id)
    )
    return int(result.scalar_one())


async def list_policies(session: AsyncSession, org_id: str) -> list[Policy]:
    # Newest first; id breaks ties so rendering stays deterministic.
    stmt = (
        select(Policy)
        .where(Policy.organization_id == org_id)
        .order_by(Policy.created_at.desc(), Policy.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def search_policies(session: AsyncSession, org_id: str, keyword: str) -> list[Policy]:
    pattern = f"%{keyword.lower()}%"
    stmt = (
        select(Policy)
        .where(
            Policy.organization_id == org_id,
            or_(func.lower(Policy.title).like(pattern), func.lower(Policy.content).like(pattern)),
        )
        .order_by(Policy.created_at.desc(), Policy.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_policy(session: AsyncSession, org_id: str, policy_id: str) -> Policy | None:
    # Org scoping prevents cross-organization reads by guessed ids.
    result = await session.execute(
        select(Policy).where(Policy.id == policy_id, Policy.organization_id == org_id)
    )
    return result.scalar_one_or_none()


async def add_policy(session: AsyncSession, org_id: str, data: PolicyInput) -> Policy:
    policy = Policy(
        id=str(uuid4()),
        organization_id=org_id,
        title=data.title,
        content=data.content,
        category=data.category,
        source=data.source,
        created_at=datetime.now(timezone.utc),
    )
    session.add(policy)
    await session.flush()
    return policy


async def delete_policy(session: AsyncSession, org_id: str, policy_id: str) -> bool:
    result = await session.execute(
        delete(Policy).where(Policy.id == policy_id, Policy.organization_id == org_id)
    )
    return bool(result.rowcount)
