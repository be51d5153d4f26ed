from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sheetbrain.domain.models import AuditLog


async def insert_audit_log(
    session: AsyncSession,
    *,
    organization_id: str,
    user_id: str | None,
    formula_count: int,
    compliant_count: int,
    issues_found: int,
    duration_ms: int,
    rag_used: bool,
    rag_context_count: int,
    synthetic: bool,
) -> AuditLog:
    # Append-only; aggregates are never updated after the request completes.
    row = AuditLog(
        organization_id=organization_id,
        user_id=user_id,
        formula_count=formula_count,
        compliant_count=compliant_count,
        issues_found=issues_found,
        duration_ms=duration_ms,
        rag_used=rag_used,
        rag_context_count=rag_context_count,
        synthetic=synthetic,
    )
    session.add(row)
    await session.flush()
    return row


async def count_audit_logs(session: AsyncSession, org_id: str, user_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(AuditLog).where(AuditLog.organization_id == org_id)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())
