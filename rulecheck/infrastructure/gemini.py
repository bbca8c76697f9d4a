"""Integration with the Gemini ``generateContent`` REST API."""
from __future__ import annotations

import json
import logging
from typing import Any, Sequence
from urllib.parse import urlparse

import httpx

from rulecheck.core.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """You are a precise rule-checker. Output STRICT valid JSON only, no commentary.
For every rule in RULE_TO_CHECK:
1. Decide PASS or FAIL whether the document satisfies the rule.
2. Provide one short evidence sentence that includes the page number.
3. Provide a 1-2 sentence reasoning.
4. Output an integer confidence 0-100 (higher = more sure).
Schema of one result:
{ "rule": "", "status": "pass|fail", "evidence": "", "reasoning": "", "confidence": 0 }
When exactly one rule is given return exactly one JSON object.
When several rules are given return exactly one JSON array with one object per rule, in the same order.
Return nothing else."""


def build_prompt(text: str, rules: Sequence[str]) -> str:
    if len(rules) == 1:
        rule_block = json.dumps(rules[0], ensure_ascii=False)
    else:
        rule_block = json.dumps(list(rules), ensure_ascii=False)
    return (
        "Below is the extracted text from document pages:\n"
        "---DOC_START---\n"
        f"{text}\n"
        "---DOC_END---\n"
        f"RULE_TO_CHECK: {rule_block}\n"
    )


class GeminiRuleClient:
    """Client for the Gemini text generation endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float = 0.1,
        max_output_tokens: int = 512,
        top_p: float = 0.8,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")
        if not api_key:
            raise ValueError("api_key is required")

        self._api_key = api_key
        self._model = model
        self._request_url = f"{api_base.rstrip('/')}/models/{model}:generateContent"
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._top_p = top_p
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _build_payload(self, text: str, rules: Sequence[str]) -> dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": build_prompt(text, rules)}],
                }
            ],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_output_tokens,
                "topP": self._top_p,
                "thinkingConfig": {"thinkingBudget": 0},
            },
        }

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return response.reason_phrase or "unknown error"

    @staticmethod
    def _extract_text(body: Any) -> str:
        candidates = body.get("candidates") if isinstance(body, dict) else None
        if not candidates:
            feedback = body.get("promptFeedback") if isinstance(body, dict) else None
            reason = (feedback or {}).get("blockReason") if isinstance(feedback, dict) else None
            raise UpstreamError(f"Model returned no candidates{f' ({reason})' if reason else ''}")

        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def check_rules(self, text: str, rules: Sequence[str]) -> str:
        payload = self._build_payload(text, rules)
        try:
            response = await self._client.post(
                self._request_url,
                headers={"x-goog-api-key": self._api_key},
                json=payload,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"Rule check timed out after {self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Rule check request failed: {exc}") from exc

        if not response.is_success:
            message = self._error_message(response)
            logger.warning("Gemini returned %s: %s", response.status_code, message)
            raise UpstreamError(f"Gemini API error {response.status_code}: {message}")

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError("Gemini response is not valid JSON") from exc
        return self._extract_text(body)

    async def aclose(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            await self._client.aclose()


__all__ = ["GeminiRuleClient", "SYSTEM_INSTRUCTION", "build_prompt"]
