"""Environment driven settings for the analysis service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = _env_str(name)
    if raw is None:
        return default
    items = tuple(item.strip() for item in raw.split(",") if item.strip())
    return items or default


def _default_uploads_root() -> Path:
    return Path(__file__).resolve().parents[2] / "uploads"


@dataclass(frozen=True)
class Settings:
    text_threshold: int = 150
    render_scale: float = 2.0
    ocr_concurrency: int = 3
    ocr_timeout: float = 120.0
    ocr_languages: tuple[str, ...] = ("eng",)
    ocr_url: str | None = None
    ocr_cache_size: int = 256
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    inference_timeout: float = 60.0
    uploads_root: Path = field(default_factory=_default_uploads_root)
    max_upload_mb: int = 5
    cleanup_delay: float = 10.0
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from process environment variables."""

        uploads_root = _env_str("UPLOADS_ROOT")
        settings = cls(
            text_threshold=_env_int("TEXT_THRESHOLD", 150),
            render_scale=_env_float("RENDER_SCALE", 2.0),
            ocr_concurrency=_env_int("CONCURRENT_OCR", 3),
            ocr_timeout=_env_float("OCR_TIMEOUT_SECONDS", 120.0),
            ocr_languages=_env_list("OCR_LANGUAGES", ("eng",)),
            ocr_url=_env_str("TESSERACT_API_URL"),
            ocr_cache_size=_env_int("OCR_CACHE_SIZE", 256),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-flash") or "gemini-2.5-flash",
            gemini_api_base=_env_str("GEMINI_API_BASE", cls.gemini_api_base) or cls.gemini_api_base,
            inference_timeout=_env_float("INFERENCE_TIMEOUT_SECONDS", 60.0),
            uploads_root=(
                Path(uploads_root).expanduser().resolve() if uploads_root else _default_uploads_root()
            ),
            max_upload_mb=_env_int("MAX_UPLOAD_MB", 5),
            cleanup_delay=_env_float("JOB_CLEANUP_DELAY_SECONDS", 10.0),
            cors_origins=_env_list("API_CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.ocr_concurrency < 1:
            raise ValueError("CONCURRENT_OCR must be at least 1")
        if self.text_threshold < 0:
            raise ValueError("TEXT_THRESHOLD cannot be negative")
        if self.render_scale <= 0:
            raise ValueError("RENDER_SCALE must be positive")
        if self.ocr_timeout <= 0 or self.inference_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if self.max_upload_mb < 1:
            raise ValueError("MAX_UPLOAD_MB must be at least 1")
        if self.cleanup_delay < 0:
            raise ValueError("JOB_CLEANUP_DELAY_SECONDS cannot be negative")

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


__all__ = ["Settings", "DEFAULT_CORS_ORIGINS"]
