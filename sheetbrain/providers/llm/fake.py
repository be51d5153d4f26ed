from __future__ import annotations

import json
import re


_NUMBERED_LINE_RE = re.compile(r"^\s*\d+\.\s+(.*)$")


class FakeLLMProvider:
    def __init__(self, response: str | None = None, error: Exception | None = None) -> None:
        # Deterministic response keeps tests stable without external calls.
        self._response = response
        self._error = error
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self._error is not None:
            raise self._error
        if self._response is not None:
            return self._response
        # Echo one compliant result per numbered formula in the prompt.
        formulas = []
        for line in user_prompt.splitlines():
            match = _NUMBERED_LINE_RE.match(line)
            if match:
                formulas.append(match.group(1))
        results = [
            {
                "formula": formula,
                "compliant": True,
                "risk": "low",
                "issues": [],
                "recommendations": [],
            }
            for formula in formulas
        ]
        return "Audit results:\n" + json.dumps(results)
