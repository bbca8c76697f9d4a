"""Rule checking integration hooks."""
from __future__ import annotations

import json
from typing import Protocol, Sequence


class RuleCheckClient(Protocol):
    """Contract for inference integrations returning raw model text."""

    async def check_rules(self, text: str, rules: Sequence[str]) -> str:
        """Ask the model whether ``text`` satisfies each rule."""


class NoOpRuleCheckClient:
    """Fallback used when no inference provider is configured.

    Every rule fails with zero confidence so callers still receive a
    well-formed verdict.
    """

    async def check_rules(self, text: str, rules: Sequence[str]) -> str:
        verdicts = [
            {
                "rule": rule,
                "status": "fail",
                "evidence": "",
                "reasoning": "Rule checking is not configured.",
                "confidence": 0,
            }
            for rule in rules
        ]
        if len(verdicts) == 1:
            return json.dumps(verdicts[0])
        return json.dumps(verdicts)


_client: RuleCheckClient = NoOpRuleCheckClient()


def configure_rule_client(client: RuleCheckClient) -> None:
    """Install the rule checking client used by the document pipeline."""

    global _client
    _client = client


def get_rule_client() -> RuleCheckClient:
    return _client


def reset_rule_client() -> None:
    configure_rule_client(NoOpRuleCheckClient())
