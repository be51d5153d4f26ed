from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Sequence

from pydantic import ValidationError

from sheetbrain.agent.prompts import build_system_prompt, build_user_prompt
from sheetbrain.core.errors import AuditInvocationError
from sheetbrain.domain.schemas import AuditResult
from sheetbrain.providers.llm.base import LLMProvider


logger = logging.getLogger(__name__)

_RISK_LEVELS = ("low", "medium", "high")


@dataclass(frozen=True)
class AuditRequest:
    formulas: list[str]
    policies: str
    context: str | None = None


def extract_json_array(text: str) -> list[Any]:
    # Models wrap JSON in prose or code fences; take the first array that decodes cleanly.
    decoder = json.JSONDecoder()
    position = text.find("[")
    while position != -1:
        try:
            value, _end = decoder.raw_decode(text, position)
        except json.JSONDecodeError:
            position = text.find("[", position + 1)
            continue
        if isinstance(value, list):
            return value
        position = text.find("[", position + 1)
    raise AuditInvocationError("Could not parse JSON from LLM response")


def parse_audit_array(text: str, formulas: Sequence[str]) -> list[AuditResult]:
    items = extract_json_array(text)
    if len(items) != len(formulas):
        raise AuditInvocationError(
            f"LLM returned {len(items)} results for {len(formulas)} formulas"
        )
    results: list[AuditResult] = []
    for formula, item in zip(formulas, items):
        if not isinstance(item, dict):
            raise AuditInvocationError("LLM audit result is not an object")
        payload = dict(item)
        # Results are positional; a missing or empty formula is taken from the request.
        if not payload.get("formula"):
            payload["formula"] = formula
        try:
            result = AuditResult.model_validate(payload)
        except ValidationError as exc:
            raise AuditInvocationError(f"Invalid audit result: {exc.errors()[0]['msg']}") from exc
        results.append(result.model_copy(update={"synthetic": False}))
    return results


def synthetic_results(formulas: Sequence[str], rng: random.Random | None = None) -> list[AuditResult]:
    """Placeholder results used when the LLM is unavailable outside strict mode.

    Values are random and carry no audit meaning; every result is flagged
    ``synthetic=True`` so callers and logs can tell them apart.
    """
    rng = rng or random.Random()
    results: list[AuditResult] = []
    for formula in formulas:
        results.append(
            AuditResult(
                formula=formula,
                compliant=rng.random() > 0.3,
                risk=rng.choice(_RISK_LEVELS),
                issues=["Potential performance issue"] if rng.random() > 0.5 else [],
                recommendations=["Consider using SUMIF for better performance"],
                synthetic=True,
            )
        )
    return results


class FormulaAuditor:
    def __init__(self, provider: LLMProvider) -> None:
        self._provider = provider

    async def audit_formulas(self, request: AuditRequest) -> list[AuditResult]:
        if not request.formulas:
            return []
        system_prompt = build_system_prompt(request.policies, request.context)
        user_prompt = build_user_prompt(request.formulas)
        try:
            content = await self._provider.complete(system_prompt, user_prompt)
        except AuditInvocationError:
            raise
        except Exception as exc:
            raise AuditInvocationError(str(exc) or type(exc).__name__) from exc
        results = parse_audit_array(content, request.formulas)
        logger.debug("audit_parsed formulas=%s", len(results))
        return results
