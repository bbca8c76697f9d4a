import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rulecheck.core.errors import MalformedVerdict
from rulecheck.core.normalizer import normalize
from rulecheck.core.schema import Verdict


def test_fenced_object_is_coerced():
    verdict = normalize('```json\n{"status":"PASS","confidence":"87"}\n```')

    assert isinstance(verdict, Verdict)
    assert verdict.status == "pass"
    assert verdict.confidence == 87
    assert verdict.evidence == ""
    assert verdict.reasoning == ""


def test_text_without_json_is_rejected():
    with pytest.raises(MalformedVerdict):
        normalize("no json here")


def test_confidence_is_clamped():
    assert normalize('{"confidence":150}').confidence == 100
    assert normalize('{"confidence":-4}').confidence == 0
    assert normalize('{"confidence":"87.6"}').confidence == 88


@pytest.mark.parametrize("value", [None, "high", True, [], {}])
def test_non_numeric_confidence_defaults_to_zero(value):
    verdict = normalize(json.dumps({"status": "pass", "confidence": value}))

    assert verdict.confidence == 0


@pytest.mark.parametrize("status", ["Pass", " pass ", "PASS"])
def test_pass_is_case_insensitive(status):
    assert normalize(f'{{"status": "{status}"}}').status == "pass"


@pytest.mark.parametrize("status", ["passed", "ok", "FAIL", "", None, 1])
def test_anything_else_becomes_fail(status):
    assert normalize(json.dumps({"status": status})).status == "fail"


def test_missing_rule_falls_back_to_submitted_rule():
    verdict = normalize('{"status": "pass"}', ["Must mention a date."])

    assert verdict.rule == "Must mention a date."


def test_array_output_returns_one_verdict_per_item():
    raw = (
        "Here is the result:\n"
        '[{"rule": "A", "status": "pass", "evidence": "Page 1: 2024", "confidence": 91},'
        ' {"status": "nope", "reasoning": "no terms"}]\n'
        "Thanks!"
    )

    verdicts = normalize(raw, ["A", "B"])

    assert [v.rule for v in verdicts] == ["A", "B"]
    assert [v.status for v in verdicts] == ["pass", "fail"]
    assert verdicts[0].evidence == "Page 1: 2024"
    assert verdicts[1].reasoning == "no terms"
    assert verdicts[1].confidence == 0


def test_array_items_must_be_objects():
    with pytest.raises(MalformedVerdict):
        normalize('["pass"]')


def test_invalid_json_between_brackets_is_rejected():
    with pytest.raises(MalformedVerdict):
        normalize('{"status": pass}')


def test_unbalanced_brackets_are_rejected():
    with pytest.raises(MalformedVerdict):
        normalize('{"status": "pass"')
