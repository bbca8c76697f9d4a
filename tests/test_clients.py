from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rulecheck.core.errors import UpstreamError, UpstreamTimeout
from rulecheck.infrastructure.gemini import SYSTEM_INSTRUCTION, GeminiRuleClient, build_prompt
from rulecheck.infrastructure.tesseract import TesseractOCRClient

OCR_URL = "http://ocr.local/api/ocr"


def _recognize(handler, image=b"\x89PNG\r\n\x1a\n"):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = TesseractOCRClient(OCR_URL, timeout=5.0, http_client=http_client)
            return await client.recognize(image, filename="page_2.png", languages=["eng", "rus"])

    return asyncio.run(scenario())


def _check(handler, rules):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = GeminiRuleClient(
                "secret-key",
                model="gemini-test",
                api_base="https://gemini.local/v1beta",
                http_client=http_client,
            )
            return await client.check_rules("Page 1: Published 2024", rules)

    return asyncio.run(scenario())


def test_ocr_posts_multipart_image_and_languages():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["content_type"] = request.headers["content-type"]
        captured["body"] = request.content
        return httpx.Response(200, json={"text": "Published 2024", "confidence": "88.5"})

    result = _recognize(handler)

    assert captured["url"] == OCR_URL
    assert str(captured["content_type"]).startswith("multipart/form-data")
    body = captured["body"]
    assert b'name="file"; filename="page_2.png"' in body
    assert b"Content-Type: image/png" in body
    assert b'name="options"' in body
    assert json.dumps({"languages": ["eng", "rus"]}).encode() in body
    assert result.text == "Published 2024"
    assert result.confidence == 88.5
    assert result.metadata == {"provider": "tesseract"}


def test_ocr_accepts_stdout_envelope():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"stdout": "scanned words\n"}})

    result = _recognize(handler)

    assert result.text == "scanned words\n"
    assert result.confidence is None
    assert result.metadata["envelope"] == "stdout"


def test_ocr_non_success_status_is_upstream_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="overloaded")

    with pytest.raises(UpstreamError, match="503"):
        _recognize(handler)


def test_ocr_malformed_json_is_upstream_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(UpstreamError, match="not valid JSON"):
        _recognize(handler)


def test_ocr_missing_text_is_upstream_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"words": []})

    with pytest.raises(UpstreamError, match="missing the text"):
        _recognize(handler)


def test_ocr_timeout_is_upstream_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamTimeout):
        _recognize(handler)


def test_ocr_client_requires_absolute_url():
    with pytest.raises(ValueError):
        TesseractOCRClient("/relative/path")


def test_gemini_request_shape_and_text_extraction():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["key"] = request.headers.get("x-goog-api-key")
        captured["body"] = json.loads(request.content.decode("utf-8"))
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {
                        "content": {
                            "role": "model",
                            "parts": [{"text": '```json\n{"status": "pass",'}, {"text": ' "confidence": 90}\n```'}],
                        }
                    }
                ]
            },
        )

    raw = _check(handler, ["Must mention a date."])

    assert captured["url"] == "https://gemini.local/v1beta/models/gemini-test:generateContent"
    assert captured["key"] == "secret-key"
    body = captured["body"]
    assert body["systemInstruction"]["parts"][0]["text"] == SYSTEM_INSTRUCTION
    assert body["generationConfig"] == {
        "temperature": 0.1,
        "maxOutputTokens": 512,
        "topP": 0.8,
        "thinkingConfig": {"thinkingBudget": 0},
    }
    prompt = body["contents"][0]["parts"][0]["text"]
    assert "---DOC_START---\nPage 1: Published 2024\n---DOC_END---" in prompt
    assert 'RULE_TO_CHECK: "Must mention a date."' in prompt
    assert raw == '```json\n{"status": "pass", "confidence": 90}\n```'


def test_gemini_prompt_lists_multiple_rules_as_array():
    prompt = build_prompt("text", ["a", "b"])

    assert 'RULE_TO_CHECK: ["a", "b"]' in prompt


def test_gemini_error_message_is_surfaced():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"code": 429, "message": "Resource has been exhausted"}})

    with pytest.raises(UpstreamError, match="429: Resource has been exhausted"):
        _check(handler, ["r"])


def test_gemini_without_candidates_is_upstream_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    with pytest.raises(UpstreamError, match="SAFETY"):
        _check(handler, ["r"])


def test_gemini_timeout_is_upstream_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(UpstreamTimeout):
        _check(handler, ["r"])
