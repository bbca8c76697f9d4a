"""Application service layer for analysis orchestration."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path

from rulecheck.core.config import Settings
from rulecheck.core.schema import ProgressEvent
from rulecheck.domain import Job
from rulecheck.infrastructure import ProgressRegistry, RecognitionCache, Subscription
from rulecheck.infrastructure.pdf import DocumentReader
from rulecheck.workers.dispatcher import RecognitionDispatcher
from rulecheck.workers.pipeline import AnalysisRequest, DocumentPipeline

logger = logging.getLogger(__name__)


class AnalysisService:
    """Coordinates job creation, pipeline scheduling and progress queries."""

    def __init__(
        self,
        settings: Settings,
        *,
        registry: ProgressRegistry | None = None,
        reader: DocumentReader | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or ProgressRegistry()
        self.dispatcher = RecognitionDispatcher(settings.ocr_concurrency, timeout=settings.ocr_timeout)
        self.cache = RecognitionCache(settings.ocr_cache_size) if settings.ocr_cache_size > 0 else None
        self.pipeline = DocumentPipeline(
            self.registry,
            self.dispatcher,
            settings=settings,
            reader=reader,
            cache=self.cache,
        )

    # ------------------------------------------------------------------
    # job orchestration
    # ------------------------------------------------------------------
    @staticmethod
    def next_job_id() -> str:
        return uuid.uuid4().hex

    def start_analysis(self, file_path: Path, filename: str, rules: list[str]) -> str:
        """Create a job and schedule its pipeline on the running event loop."""

        job_id = self.next_job_id()
        self.registry.create(job_id)
        logger.info("Analysing %s as job %s with %d rules", filename, job_id, len(rules))
        self.pipeline.start(job_id, AnalysisRequest(file_path=file_path, filename=filename, rules=list(rules)))
        return job_id

    def get_job(self, job_id: str) -> Job | None:
        return self.registry.get(job_id)

    def subscribe(self, job_id: str) -> tuple[ProgressEvent, Subscription]:
        return self.registry.subscribe(job_id)

    def unsubscribe(self, job_id: str, subscription: Subscription) -> None:
        self.registry.unsubscribe(job_id, subscription)

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self.registry.reset()
        if self.cache is not None:
            self.cache.clear()


_service: AnalysisService | None = None


def configure_analysis_service(settings: Settings, *, reader: DocumentReader | None = None) -> AnalysisService:
    """Replace the process-wide service, e.g. during application start-up."""

    global _service
    if _service is not None:
        _service.reset()
    _service = AnalysisService(settings, reader=reader)
    return _service


def get_analysis_service() -> AnalysisService:
    """Return the singleton analysis service for the process."""

    global _service
    if _service is None:
        _service = AnalysisService(Settings.from_env())
    return _service


def reset_analysis_state() -> None:
    """Drop the in-memory job table (used in tests)."""

    global _service
    if _service is not None:
        _service.reset()
    _service = None
