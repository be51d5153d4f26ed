"""Per-request audit orchestration.

Order of checks is fixed: identity, rate limit, quota, body validation,
formula extraction. Only the LLM invocation is allowed to fail the request
(and only in strict mode); retrieval, usage accounting, audit-log persistence
and analytics are supporting steps and never change the response.
"""

from __future__ import annotations

import logging
import random
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sheetbrain.apps.api.rate_limit import RateLimiter, enforce_rate_limit
from sheetbrain.core.config import Settings
from sheetbrain.core.errors import AuditRequestError
from sheetbrain.domain.schemas import (
    AuditEntry,
    AuditRequestBody,
    AuditResponse,
    AuditResult,
    DocumentChunkRecord,
    FormulaEntry,
    Principal,
    RetrievalOptions,
    SheetContext,
    SubscriptionStatus,
)
from sheetbrain.persistence.db import session_scope
from sheetbrain.persistence.repos import audit_logs as audit_logs_repo
from sheetbrain.services.auditor import AuditRequest, FormulaAuditor, synthetic_results
from sheetbrain.services.policies import PolicyService
from sheetbrain.services.quota import QuotaService, build_quota_exceeded_error, within_quota
from sheetbrain.services.resilience import run_best_effort
from sheetbrain.services.retrieval import Retriever
from sheetbrain.services.telemetry import (
    capture_exception,
    log_api_request,
    log_audit_event,
    track_event,
)
from sheetbrain.sheets.extraction import extract_formulas


logger = logging.getLogger(__name__)

AUDIT_PATH = "/api/audit"


def build_audit_context(context: SheetContext, range_ref: str) -> str:
    return (
        f"Organization: {context.organization or 'Unknown'}\n"
        f"Department: {context.department or 'N/A'}\n"
        f"Sheet: {context.sheet_name or 'N/A'} ({context.range or range_ref})\n"
        f"Purpose: {context.sheet_purpose or 'Not provided'}"
    )


def render_retrieved_context(chunks: list[DocumentChunkRecord]) -> str:
    return "\n".join(f"Context {idx}: {chunk.content}" for idx, chunk in enumerate(chunks, start=1))


def severity_counts(results: list[AuditResult]) -> dict[str, int]:
    # critical is reserved for future risk levels and always zero today.
    counts = {"critical": 0, "high": 0, "medium": 0, "low": 0}
    for result in results:
        counts[result.risk] += 1
    return counts


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class AuditPipeline:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        policies: PolicyService,
        retriever: Retriever,
        auditor: FormulaAuditor,
        quota: QuotaService,
        rate_limiter: RateLimiter | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._policies = policies
        self._retriever = retriever
        self._auditor = auditor
        self._quota = quota
        self._rate_limiter = rate_limiter
        self._rng = rng

    async def run(self, principal: Principal | None, payload: Any) -> AuditResponse:
        start = time.monotonic()
        if principal is None:
            log_api_request(
                method="POST",
                path=AUDIT_PATH,
                status_code=401,
                duration_ms=_elapsed_ms(start),
                error="Unauthorized",
            )
            raise AuditRequestError(401, "Unauthorized")

        try:
            response = await self._run(principal, payload, start)
        except AuditRequestError as exc:
            log_api_request(
                method="POST",
                path=AUDIT_PATH,
                status_code=exc.status_code,
                duration_ms=_elapsed_ms(start),
                user_id=principal.user_id,
                org_id=principal.org_id,
                error=exc.message,
            )
            raise
        except Exception as exc:
            duration = _elapsed_ms(start)
            message = str(exc) or "Audit failed"
            capture_exception(
                exc,
                {
                    "endpoint": AUDIT_PATH,
                    "user_id": principal.user_id,
                    "org_id": principal.org_id,
                    "duration_ms": duration,
                },
            )
            log_api_request(
                method="POST",
                path=AUDIT_PATH,
                status_code=500,
                duration_ms=duration,
                user_id=principal.user_id,
                org_id=principal.org_id,
                error=message,
            )
            raise AuditRequestError(500, message) from exc

        log_api_request(
            method="POST",
            path=AUDIT_PATH,
            status_code=200,
            duration_ms=response.duration,
            user_id=principal.user_id,
            org_id=principal.org_id,
        )
        return response

    async def _check_quota(self, principal: Principal) -> SubscriptionStatus:
        subscription = await self._quota.get_subscription(principal.org_id)
        if not within_quota(subscription):
            raise build_quota_exceeded_error(subscription)
        return subscription

    async def _reserve_quota(self, principal: Principal, subscription: SubscriptionStatus) -> str | None:
        """Reserve usage up front in strict mode; returns the reserved month or None."""
        if not self._settings.quota_strict_enforcement:
            return None
        month = self._quota.current_month()
        reserved = await self._quota.try_consume_quota(
            principal.org_id, subscription.quota_limit, month_year=month
        )
        if not reserved:
            raise build_quota_exceeded_error(subscription)
        return month

    @staticmethod
    def _validate(payload: Any) -> AuditRequestBody:
        try:
            return AuditRequestBody.model_validate(payload)
        except ValidationError as exc:
            raise AuditRequestError(400, "Missing required fields: range, context") from exc

    async def _retrieve(
        self, principal: Principal, entries: list[FormulaEntry]
    ) -> list[DocumentChunkRecord]:
        options = RetrievalOptions(
            org_id=principal.org_id,
            top_k=self._settings.retrieval_top_k,
            min_confidence=self._settings.retrieval_min_confidence,
        )
        query = "\n".join(entry.formula for entry in entries)
        return await self._retriever.retrieve_relevant_context(query, options)

    async def _invoke(self, request: AuditRequest) -> list[AuditResult]:
        try:
            return await self._auditor.audit_formulas(request)
        except Exception as exc:
            if self._settings.strict_audit:
                raise
            logger.warning(
                "audit_invocation_failed_fallback formulas=%s error=%s", len(request.formulas), exc
            )
            return synthetic_results(request.formulas, self._rng)

    async def _run(self, principal: Principal, payload: Any, start: float) -> AuditResponse:
        await enforce_rate_limit(self._rate_limiter, principal.org_id)
        subscription = await self._check_quota(principal)

        body = self._validate(payload)
        entries = extract_formulas(body.context, body.range)
        if not entries:
            raise AuditRequestError(400, "No formulas found in the provided range/context")

        # Only requests that reach invocation may hold a reservation.
        reserved_month = await self._reserve_quota(principal, subscription)
        try:
            policies_text = await self._policies.build_policies_text(principal.org_id)
            audit_context = build_audit_context(body.context, body.range)

            chunks = await self._retrieve(principal, entries)
            retrieved_text = render_retrieved_context(chunks)
            if retrieved_text:
                audit_context = f"{audit_context}\n\nRetrieved Context:\n{retrieved_text}"

            results = await self._invoke(
                AuditRequest(
                    formulas=[entry.formula for entry in entries],
                    policies=policies_text,
                    context=audit_context,
                )
            )
        except Exception:
            if reserved_month is not None:
                await run_best_effort(
                    "release_usage",
                    lambda: self._quota.release_quota(principal.org_id, reserved_month),
                    context={"org_id": principal.org_id},
                )
            raise
        synthetic = any(result.synthetic for result in results)

        if reserved_month is None:
            await run_best_effort(
                "record_usage",
                lambda: self._quota.record_audit_usage(principal.org_id),
                context={"org_id": principal.org_id},
            )

        duration = _elapsed_ms(start)
        compliant_count = sum(1 for result in results if result.compliant)
        issues_found = len(results) - compliant_count
        rag_used = bool(retrieved_text)

        async def _persist_log() -> None:
            async with session_scope(self._session_factory) as session:
                await audit_logs_repo.insert_audit_log(
                    session,
                    organization_id=principal.org_id,
                    user_id=principal.user_id,
                    formula_count=len(results),
                    compliant_count=compliant_count,
                    issues_found=issues_found,
                    duration_ms=duration,
                    rag_used=rag_used,
                    rag_context_count=len(chunks),
                    synthetic=synthetic,
                )

        async def _emit_events() -> None:
            log_audit_event(
                user_id=principal.user_id,
                org_id=principal.org_id,
                formula_count=len(results),
                issues_found=issues_found,
                severity=severity_counts(results),
                duration_ms=duration,
                rag_used=rag_used,
                rag_context_count=len(chunks),
                synthetic=synthetic,
            )
            track_event(
                principal.user_id,
                "audit_completed",
                {
                    "org_id": principal.org_id,
                    "formula_count": len(results),
                    "issues_found": issues_found,
                    "duration_ms": duration,
                },
            )

        await run_best_effort("persist_audit_log", _persist_log, context={"org_id": principal.org_id})
        await run_best_effort("emit_audit_events", _emit_events, context={"org_id": principal.org_id})

        audits = [
            AuditEntry(cell_address=entry.cell, **result.model_dump())
            for entry, result in zip(entries, results)
        ]
        return AuditResponse(
            success=True,
            audits=audits,
            count=len(audits),
            compliant=compliant_count,
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            duration=duration,
            synthetic=synthetic,
        )
