from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import BinaryIO

from rulecheck.core.errors import ValidationError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = {"application/pdf", "application/octet-stream"}
PDF_SIGNATURE = b"%PDF"
DEFAULT_RULES = [
    "The document must mention at least one date.",
    "The document must define at least one term.",
]
_CHUNK_SIZE = 1024 * 1024


def ensure_uploads_root(root: Path) -> Path:
    """Ensure the upload directory exists and return it."""

    root.mkdir(parents=True, exist_ok=True)
    return root


def validate_content_type(content_type: str | None) -> None:
    if content_type and content_type not in PDF_CONTENT_TYPES:
        raise ValidationError(f"Only PDF files are allowed, got {content_type}")


def save_upload(root: Path, filename: str, source: BinaryIO, *, max_bytes: int) -> Path:
    """Persist an uploaded PDF under a unique name and return its path.

    The stream is copied in chunks so oversized uploads are rejected without
    being buffered in memory. Rejected files are removed before raising.
    """

    safe_name = Path(filename).name or "document.pdf"
    target = ensure_uploads_root(root) / f"{uuid.uuid4().hex}-{safe_name}"
    written = 0
    head = b""
    try:
        with target.open("wb") as buffer:
            while True:
                chunk = source.read(_CHUNK_SIZE)
                if not chunk:
                    break
                if len(head) < len(PDF_SIGNATURE):
                    head += chunk[: len(PDF_SIGNATURE) - len(head)]
                written += len(chunk)
                if written > max_bytes:
                    raise ValidationError(
                        f"File size exceeds limit of {max_bytes // (1024 * 1024)}MB",
                        status_code=413,
                    )
                buffer.write(chunk)
        if not head.startswith(PDF_SIGNATURE):
            raise ValidationError("File is not a valid PDF (missing %PDF signature)")
    except ValidationError:
        discard_upload(target)
        raise
    logger.info("Stored upload %s (%d bytes)", target.name, written)
    return target


def discard_upload(path: Path) -> None:
    """Delete a stored upload; missing files are ignored."""

    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        logger.warning("Could not delete upload %s", path, exc_info=True)


def parse_rules(raw: str | None) -> list[str]:
    """Parse the ``rules`` form field into a non-empty list of rule strings."""

    if raw is None or not raw.strip():
        return list(DEFAULT_RULES)

    text = raw.strip()
    if not text.startswith("["):
        return [text]

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"rules must be a JSON array of strings: {exc.msg}") from exc
    if not isinstance(parsed, list) or not parsed:
        raise ValidationError("rules must be a non-empty JSON array of strings")

    rules: list[str] = []
    for item in parsed:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError("every rule must be a non-empty string")
        rules.append(item.strip())
    return rules
