"""Optical recognition integration hooks.

The pipeline only depends on the :class:`OCRClient` protocol. Without a
configured recognition endpoint the :class:`NoOpOCRClient` returns empty text,
which lets the service start and tests run against deterministic clients. A
real integration is installed with ``configure_ocr_client`` during application
start-up.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence


class OCRClient(Protocol):
    """Contract for recognition integrations."""

    async def recognize(
        self,
        image: bytes,
        *,
        filename: str,
        languages: Sequence[str],
    ) -> "OCRExtractionResult":
        """Recognize text in a rendered page image."""


@dataclass(slots=True)
class OCRExtractionResult:
    """Container returned by :class:`OCRClient` implementations."""

    text: str
    confidence: float | None = None
    metadata: dict[str, object] | None = None


class NoOpOCRClient:
    """Fallback OCR client used when no provider is configured."""

    async def recognize(
        self,
        image: bytes,
        *,
        filename: str,
        languages: Sequence[str],
    ) -> OCRExtractionResult:  # pragma: no cover - trivial
        return OCRExtractionResult(
            text="",
            confidence=None,
            metadata={
                "provider": "noop",
                "reason": "OCR integration not configured",
                "filename": filename,
            },
        )


_client: OCRClient = NoOpOCRClient()


def configure_ocr_client(client: OCRClient) -> None:
    """Install the OCR client used by the document pipeline."""

    global _client
    _client = client


def get_ocr_client() -> OCRClient:
    """Return the currently configured OCR client."""

    return _client


def reset_ocr_client() -> None:
    configure_ocr_client(NoOpOCRClient())
