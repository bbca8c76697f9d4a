from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from rulecheck.core import hashing
from rulecheck.core.config import Settings
from rulecheck.core.errors import RuleCheckError, UpstreamError, UpstreamTimeout
from rulecheck.core.normalizer import normalize
from rulecheck.core.schema import VerdictResult
from rulecheck.core.uploads import discard_upload
from rulecheck.domain import PageUnit
from rulecheck.infrastructure.cache import RecognitionCache
from rulecheck.infrastructure.inference import RuleCheckClient, get_rule_client
from rulecheck.infrastructure.ocr import OCRClient, get_ocr_client
from rulecheck.infrastructure.pdf import DocumentReader, PdfDocumentReader
from rulecheck.infrastructure.progress import ProgressStore
from rulecheck.workers.dispatcher import RecognitionDispatcher

logger = logging.getLogger(__name__)

PAGE_DELIMITER = "\n\n---PAGE---\n\n"

STATUS_READING = "Reading document..."
STATUS_TEXT_READY = "Extracted embedded text"
STATUS_CHECKING = "Checking rules..."
STATUS_FINALIZING = "Finalizing results..."
STATUS_COMPLETE = "Complete!"
STATUS_FAILED = "Analysis failed"

PROGRESS_READING = 10
PROGRESS_OCR_START = 30
PROGRESS_OCR_SPAN = 20
PROGRESS_TEXT_READY = 50
PROGRESS_CHECKING = 80
PROGRESS_FINALIZING = 90
PROGRESS_DONE = 100


@dataclass
class AnalysisRequest:
    file_path: Path
    filename: str
    rules: list[str] = field(default_factory=list)


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def merge_pages(pages: Iterable[PageUnit]) -> str:
    """Join page texts in ascending page order, whatever order they finished in."""

    ordered = sorted(pages, key=lambda page: page.page_number)
    return PAGE_DELIMITER.join(f"Page {page.page_number}:\n{page.text}" for page in ordered)


class DocumentPipeline:
    """Runs one analysis per job and reports each stage to the progress store."""

    def __init__(
        self,
        registry: ProgressStore,
        dispatcher: RecognitionDispatcher,
        *,
        settings: Settings | None = None,
        reader: DocumentReader | None = None,
        ocr_client: OCRClient | None = None,
        rule_client: RuleCheckClient | None = None,
        cache: RecognitionCache | None = None,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._settings = settings or Settings()
        self._reader = reader or PdfDocumentReader()
        self._ocr_client = ocr_client
        self._rule_client = rule_client
        self._cache = cache
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # scheduling
    # ------------------------------------------------------------------
    def start(self, job_id: str, request: AnalysisRequest) -> asyncio.Task[None]:
        """Schedule :meth:`run` on the running loop and return the task."""

        task = asyncio.get_running_loop().create_task(self.run(job_id, request), name=f"analysis-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule_cleanup(self, job_id: str) -> None:
        delay = self._settings.cleanup_delay
        asyncio.get_running_loop().call_later(delay, self._registry.destroy, job_id)

    def _report(self, job_id: str, status: str, progress: int, result: Any = None) -> None:
        self._registry.update(job_id, status, progress, result)

    # ------------------------------------------------------------------
    # job lifecycle
    # ------------------------------------------------------------------
    async def run(self, job_id: str, request: AnalysisRequest) -> None:
        """Analyse one document; failures become the job's terminal update."""

        started = time.perf_counter()
        try:
            result = await self._analyze(job_id, request)
        except RuleCheckError as exc:
            logger.warning("Job %s failed: %s", job_id, exc)
            self._report(job_id, STATUS_FAILED, PROGRESS_DONE, {"error": str(exc)})
        except Exception as exc:
            logger.exception("Job %s failed unexpectedly", job_id)
            self._report(job_id, STATUS_FAILED, PROGRESS_DONE, {"error": str(exc) or type(exc).__name__})
        else:
            self._report(job_id, STATUS_COMPLETE, PROGRESS_DONE, result)
            logger.info("Job %s completed in %.2fs", job_id, time.perf_counter() - started)
        finally:
            discard_upload(request.file_path)
            self._schedule_cleanup(job_id)

    async def _analyze(self, job_id: str, request: AnalysisRequest) -> VerdictResult:
        self._report(job_id, STATUS_READING, PROGRESS_READING)
        texts = await asyncio.to_thread(self._reader.extract_page_texts, request.file_path)
        embedded = "\n".join(text.strip() for text in texts)
        char_count = len(collapse_whitespace(embedded))

        # decided once for the whole document, see DESIGN.md
        if char_count >= self._settings.text_threshold:
            logger.info(
                "Job %s: %d embedded characters across %d pages, skipping OCR",
                job_id,
                char_count,
                len(texts),
            )
            pages = [
                PageUnit(
                    page_number=number,
                    source="text",
                    text=text.strip(),
                    content_hash=hashing.sha256_text(text),
                )
                for number, text in enumerate(texts, start=1)
            ]
            merged = "\n".join(page.text for page in pages)
            self._report(job_id, STATUS_TEXT_READY, PROGRESS_TEXT_READY)
        else:
            logger.info(
                "Job %s: only %d embedded characters (threshold %d), running OCR",
                job_id,
                char_count,
                self._settings.text_threshold,
            )
            pages = await self._recognize_document(job_id, request.file_path)
            merged = merge_pages(pages)

        self._report(job_id, STATUS_CHECKING, PROGRESS_CHECKING)
        raw = await self._check_rules(collapse_whitespace(merged), request.rules)

        self._report(job_id, STATUS_FINALIZING, PROGRESS_FINALIZING)
        return normalize(raw, request.rules)

    # ------------------------------------------------------------------
    # recognition
    # ------------------------------------------------------------------
    async def _recognize_document(self, job_id: str, path: Path) -> list[PageUnit]:
        images = await asyncio.to_thread(
            self._reader.render_pages,
            path,
            scale=self._settings.render_scale,
        )
        total = len(images)
        self._report(job_id, f"Running OCR on {total} pages...", PROGRESS_OCR_START)

        completed = 0

        async def recognize(number: int, image: bytes) -> PageUnit:
            nonlocal completed
            page = await self._recognize_page(number, image)
            completed += 1
            self._report(
                job_id,
                f"Recognized page {completed} of {total}",
                PROGRESS_OCR_START + (PROGRESS_OCR_SPAN * completed) // total,
            )
            return page

        outcomes = await asyncio.gather(
            *(recognize(number, image) for number, image in images),
            return_exceptions=True,
        )

        pages: list[PageUnit] = []
        for (number, _), outcome in zip(images, outcomes):
            if isinstance(outcome, PageUnit):
                pages.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, RuleCheckError):
                raise type(outcome)(f"page {number}: {outcome}") from outcome
            raise UpstreamError(f"page {number}: {outcome}") from outcome
        return pages

    async def _recognize_page(self, number: int, image: bytes) -> PageUnit:
        content_hash = hashing.sha256_bytes(image)
        result = self._cache.get(content_hash) if self._cache is not None else None
        if result is None:
            client = self._ocr_client or get_ocr_client()
            result = await self._dispatcher.submit(
                lambda: client.recognize(
                    image,
                    filename=f"page_{number}.png",
                    languages=self._settings.ocr_languages,
                )
            )
            if self._cache is not None:
                self._cache.set(content_hash, result)
        else:
            logger.debug("Recognition cache hit for page %d", number)

        return PageUnit(
            page_number=number,
            source="recognized",
            text=(result.text or "").strip(),
            content_hash=content_hash,
            confidence=result.confidence,
        )

    # ------------------------------------------------------------------
    # rule checking
    # ------------------------------------------------------------------
    async def _check_rules(self, text: str, rules: list[str]) -> str:
        client = self._rule_client or get_rule_client()
        timeout = self._settings.inference_timeout
        try:
            return await asyncio.wait_for(client.check_rules(text, rules), timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamTimeout(f"Rule check timed out after {timeout:g}s") from exc


__all__ = [
    "AnalysisRequest",
    "DocumentPipeline",
    "PAGE_DELIMITER",
    "collapse_whitespace",
    "merge_pages",
]
