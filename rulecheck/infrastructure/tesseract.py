"""HTTP client for a self-hosted Tesseract recognition API."""
from __future__ import annotations

import json
import logging
from typing import Any, Sequence
from urllib.parse import urlparse

import httpx

from rulecheck.core.errors import UpstreamError, UpstreamTimeout

from .ocr import OCRExtractionResult

logger = logging.getLogger(__name__)


class TesseractOCRClient:
    """Posts page images as multipart uploads and reads ``{text, confidence}``."""

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_url must include scheme and host")

        self._api_url = api_url
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _safe_float(value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @classmethod
    def _parse_body(cls, body: Any) -> OCRExtractionResult:
        if not isinstance(body, dict):
            raise UpstreamError("OCR response must be a JSON object")

        if "text" in body:
            text = body.get("text")
            confidence = cls._safe_float(body.get("confidence"))
            metadata: dict[str, object] = {"provider": "tesseract"}
        else:
            # older deployments wrap the CLI output as {"data": {"stdout": ...}}
            data = body.get("data")
            if not isinstance(data, dict) or "stdout" not in data:
                raise UpstreamError("OCR response is missing the text field")
            text = data.get("stdout")
            confidence = cls._safe_float(data.get("confidence"))
            metadata = {"provider": "tesseract", "envelope": "stdout"}

        return OCRExtractionResult(
            text="" if text is None else str(text),
            confidence=confidence,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def recognize(
        self,
        image: bytes,
        *,
        filename: str,
        languages: Sequence[str],
    ) -> OCRExtractionResult:
        files = {"file": (filename, image, "image/png")}
        data = {"options": json.dumps({"languages": list(languages)})}
        try:
            response = await self._client.post(
                self._api_url,
                files=files,
                data=data,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"OCR request timed out after {self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"OCR request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("OCR service returned %s for %s", response.status_code, filename)
            raise UpstreamError(f"OCR API error {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError("OCR response is not valid JSON") from exc
        return self._parse_body(body)

    async def aclose(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            await self._client.aclose()


__all__ = ["TesseractOCRClient"]
