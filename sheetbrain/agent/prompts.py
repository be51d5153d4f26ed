from __future__ import annotations

from typing import Sequence


def build_system_prompt(policies: str, context: str | None = None) -> str:
    additional = f"Additional Context:\n{context}" if context else ""
    return (
        "You are a spreadsheet formula auditor. Analyze the provided formulas against "
        "company policies and identify compliance issues.\n\n"
        f"Company Policies:\n{policies}\n\n"
        f"{additional}\n\n"
        "For each formula, provide:\n"
        "1. Whether it complies with policies\n"
        "2. Risk level (low/medium/high)\n"
        "3. Specific issues found\n"
        "4. Recommendations for compliance\n\n"
        "Respond in JSON format for each formula."
    )


def build_user_prompt(formulas: Sequence[str]) -> str:
    numbered = "\n".join(f"{idx}. {formula}" for idx, formula in enumerate(formulas, start=1))
    return f"Audit these formulas:\n\n{numbered}\n\nRespond with a JSON array of audit results."
