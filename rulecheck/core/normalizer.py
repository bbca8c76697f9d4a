"""Parse free-form rule checker output into :class:`Verdict` objects.

The inference service is asked for strict JSON but may wrap it in prose or
Markdown code fences. Only the outermost JSON object or array is parsed and
every field is coerced into the verdict schema.
"""
from __future__ import annotations

import json
import math
from typing import Any, Sequence

from rulecheck.core.errors import MalformedVerdict
from rulecheck.core.schema import Verdict, VerdictResult

_CLOSERS = {"{": "}", "[": "]"}


def _locate_json(raw: str) -> str:
    starts = [index for index in (raw.find("{"), raw.find("[")) if index != -1]
    if not starts:
        raise MalformedVerdict("No JSON found in model response")
    start = min(starts)
    end = raw.rfind(_CLOSERS[raw[start]])
    if end <= start:
        raise MalformedVerdict("No balanced JSON found in model response")
    return raw[start : end + 1]


def _coerce_confidence(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return 100 if number > 0 else 0
    return max(0, min(100, int(round(number))))


def _coerce_status(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() == "pass":
        return "pass"
    return "fail"


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_verdict(item: Any, fallback_rule: str) -> Verdict:
    if not isinstance(item, dict):
        raise MalformedVerdict(f"Expected a JSON object, got {type(item).__name__}")
    rule = _coerce_text(item.get("rule")).strip() or fallback_rule
    return Verdict(
        rule=rule,
        status=_coerce_status(item.get("status")),  # type: ignore[arg-type]
        evidence=_coerce_text(item.get("evidence")),
        reasoning=_coerce_text(item.get("reasoning")),
        confidence=_coerce_confidence(item.get("confidence")),
    )


def _fallback_rule(rules: Sequence[str], index: int) -> str:
    if index < len(rules):
        return rules[index]
    return ""


def normalize(raw_text: str, rules: Sequence[str] | str | None = None) -> VerdictResult:
    """Return a verdict (object output) or list of verdicts (array output)."""

    if isinstance(rules, str):
        rules = [rules]
    submitted = list(rules or [])

    candidate = _locate_json(raw_text or "")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedVerdict(f"Model response is not valid JSON: {exc.msg}") from exc

    if isinstance(parsed, list):
        return [_coerce_verdict(item, _fallback_rule(submitted, index)) for index, item in enumerate(parsed)]
    return _coerce_verdict(parsed, _fallback_rule(submitted, 0))


__all__ = ["normalize"]
