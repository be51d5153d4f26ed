from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.domain.schemas import PolicyInput, PolicyRecord
from sheetbrain.persistence.db import session_scope
from sheetbrain.persistence.repos import policies as policies_repo


logger = logging.getLogger(__name__)

DEFAULT_POLICY = PolicyInput(
    title="Default formula policies",
    content=(
        "1) Avoid volatile functions (NOW, TODAY, RAND) in static reports.\n"
        "2) Use named ranges for clarity instead of absolute references when possible.\n"
        "3) Limit nesting depth to three levels for maintainability.\n"
        "4) Wrap external data references with error handling.\n"
        "5) Prefer SUMIF/COUNTIF over array formulas for performance.\n"
        "6) No circular references allowed without approvals.\n"
        "7) Always include IFERROR for user-facing outputs."
    ),
    category="formula",
    source="builtin",
)


def render_policies_text(policies: list[PolicyRecord]) -> str:
    return "\n".join(
        f"{idx}. {policy.title}: {policy.content}" for idx, policy in enumerate(policies, start=1)
    )


class PolicyService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def seed_default_policies(self, org_id: str) -> bool:
        # Check-then-insert is not atomic; a concurrent first request may seed twice.
        async with session_scope(self._session_factory) as session:
            if await policies_repo.count_policies(session, org_id) > 0:
                return False
            await policies_repo.add_policy(session, org_id, DEFAULT_POLICY)
        logger.info("policies_seeded org_id=%s", org_id)
        return True

    async def list_policies(self, org_id: str) -> list[PolicyRecord]:
        async with self._session_factory() as session:
            rows = await policies_repo.list_policies(session, org_id)
            return [policies_repo.to_record(row) for row in rows]

    async def search_policies(self, org_id: str, keyword: str) -> list[PolicyRecord]:
        async with self._session_factory() as session:
            rows = await policies_repo.search_policies(session, org_id, keyword)
            return [policies_repo.to_record(row) for row in rows]

    async def get_policy(self, org_id: str, policy_id: str) -> PolicyRecord | None:
        async with self._session_factory() as session:
            row = await policies_repo.get_policy(session, org_id, policy_id)
            return policies_repo.to_record(row) if row is not None else None

    async def add_policy(self, org_id: str, data: PolicyInput) -> PolicyRecord:
        async with session_scope(self._session_factory) as session:
            row = await policies_repo.add_policy(session, org_id, data)
            record = policies_repo.to_record(row)
        logger.info("policy_added org_id=%s policy_id=%s source=%s", org_id, record.id, record.source)
        return record

    async def delete_policy(self, org_id: str, policy_id: str) -> bool:
        async with session_scope(self._session_factory) as session:
            return await policies_repo.delete_policy(session, org_id, policy_id)

    async def build_policies_text(self, org_id: str) -> str:
        await self.seed_default_policies(org_id)
        return render_policies_text(await self.list_policies(org_id))
