from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.core.config import PLAN_LIMITS
from sheetbrain.core.errors import AuditRequestError, DatabaseError
from sheetbrain.domain.schemas import SubscriptionStatus
from sheetbrain.persistence.db import session_scope
from sheetbrain.persistence.repos import audit_logs as audit_logs_repo
from sheetbrain.persistence.repos import subscriptions as subscriptions_repo
from sheetbrain.persistence.repos import usage as usage_repo


logger = logging.getLogger(__name__)

UNLIMITED = -1
_DEFAULT_PLAN = "free"


@dataclass(frozen=True)
class UsageStats:
    audits_this_month: int
    total_audits: int
    month_year: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_key(now: datetime) -> str:
    # Usage is bucketed per calendar month in UTC.
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m")


def plan_limit(plan: str | None) -> int:
    return PLAN_LIMITS.get(plan or _DEFAULT_PLAN, PLAN_LIMITS[_DEFAULT_PLAN])


def within_quota(subscription: SubscriptionStatus) -> bool:
    return (
        subscription.quota_limit == UNLIMITED
        or subscription.usage_this_month < subscription.quota_limit
    )


def build_quota_exceeded_error(subscription: SubscriptionStatus) -> AuditRequestError:
    # Stable 429 payload the add-on uses to prompt an upgrade.
    return AuditRequestError(
        429,
        "Usage quota exceeded",
        extra={
            "plan": subscription.plan,
            "limit": subscription.quota_limit,
            "used": subscription.usage_this_month,
            "message": (
                f"Your {subscription.plan} plan allows {subscription.quota_limit} "
                "audits/month. Upgrade to continue."
            ),
        },
    )


class QuotaService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        # Allow time injection for deterministic rollover tests.
        self._time_provider = time_provider or _utc_now

    def current_month(self) -> str:
        return month_key(self._time_provider())

    async def get_subscription(self, org_id: str) -> SubscriptionStatus:
        month = self.current_month()
        try:
            async with self._session_factory() as session:
                row = await subscriptions_repo.get_subscription(session, org_id)
                used = await usage_repo.get_month_count(session, org_id, month)
        except SQLAlchemyError as exc:
            raise DatabaseError("Failed to load subscription") from exc
        if row is None:
            # Organizations without a billing record run on the free plan.
            return SubscriptionStatus(
                org_id=org_id,
                plan=_DEFAULT_PLAN,
                status="active",
                usage_this_month=used,
                quota_limit=plan_limit(_DEFAULT_PLAN),
            )
        plan = row.plan if row.plan in PLAN_LIMITS else _DEFAULT_PLAN
        return SubscriptionStatus(
            org_id=org_id,
            customer_id=row.stripe_customer_id or "",
            subscription_id=row.stripe_subscription_id,
            plan=plan,
            status=row.status,
            current_period_end=row.current_period_end,
            usage_this_month=used,
            quota_limit=plan_limit(plan),
        )

    async def has_quota_remaining(self, org_id: str) -> bool:
        return within_quota(await self.get_subscription(org_id))

    async def record_audit_usage(self, org_id: str) -> int:
        month = self.current_month()
        async with session_scope(self._session_factory) as session:
            count = await usage_repo.increment_month_count(session, org_id, month)
        logger.debug("audit_usage_recorded org_id=%s month=%s count=%s", org_id, month, count)
        return count

    async def try_consume_quota(self, org_id: str, limit: int, month_year: str | None = None) -> bool:
        """Atomically reserve one audit against ``limit`` for the current month.

        Returns False without touching the counter when the limit is reached.
        """
        month = month_year or self.current_month()
        async with session_scope(self._session_factory) as session:
            if limit == UNLIMITED:
                await usage_repo.increment_month_count(session, org_id, month)
                return True
            count = await usage_repo.try_increment_within_limit(session, org_id, month, limit)
        return count is not None

    async def release_quota(self, org_id: str, month_year: str | None = None) -> bool:
        # Undo a reservation for an audit that did not complete.
        month = month_year or self.current_month()
        async with session_scope(self._session_factory) as session:
            released = await usage_repo.decrement_month_count(session, org_id, month)
        logger.info("audit_usage_released org_id=%s month=%s released=%s", org_id, month, released)
        return released

    async def usage_stats(self, org_id: str, user_id: str | None = None) -> UsageStats:
        month = self.current_month()
        async with self._session_factory() as session:
            this_month = await usage_repo.get_month_count(session, org_id, month)
            total = await audit_logs_repo.count_audit_logs(session, org_id, user_id)
        return UsageStats(audits_this_month=this_month, total_audits=total, month_year=month)
