"""In-memory registry of analysis jobs and their progress subscribers."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import replace
from typing import Any, Protocol

from rulecheck.core.errors import DuplicateJob, JobNotFound, ProgressInvariantError
from rulecheck.core.schema import ProgressEvent, dump_result
from rulecheck.domain import Job
from rulecheck.domain.jobs import utcnow

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Buffered stream of progress events for one observer.

    Iteration yields events in the order they were published and stops once
    the subscription is closed or a terminal event has been delivered.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: ProgressEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if item.is_terminal:
            self._finished = True
        return item


class ProgressStore(Protocol):
    """Contract used by the pipeline to report progress."""

    def create(self, job_id: str) -> Job: ...

    def update(self, job_id: str, status: str, progress: int, result: Any = None) -> None: ...

    def subscribe(self, job_id: str) -> tuple[ProgressEvent, Subscription]: ...

    def unsubscribe(self, job_id: str, subscription: Subscription) -> None: ...

    def destroy(self, job_id: str) -> None: ...

    def get(self, job_id: str) -> Job | None: ...


class ProgressRegistry:
    """Thread-safe job table with per-job fan-out to subscribers."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _event_for(job: Job) -> ProgressEvent:
        data = dump_result(job.result) if job.is_terminal else None
        return ProgressEvent(status=job.status, progress=job.progress, data=data)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def create(self, job_id: str) -> Job:
        with self._lock:
            if job_id in self._jobs:
                raise DuplicateJob(f"job {job_id} already exists")
            job = Job(id=job_id)
            self._jobs[job_id] = job
        logger.info("Created job %s", job_id)
        return replace(job, subscribers=[])

    def update(self, job_id: str, status: str, progress: int, result: Any = None) -> None:
        if not 0 <= progress <= 100:
            raise ProgressInvariantError(f"progress must be within [0, 100], got {progress}")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.debug("Ignoring update for unknown job %s", job_id)
                return
            if job.is_terminal:
                logger.warning("Ignoring update for finished job %s: %s", job_id, status)
                return
            if progress < job.progress:
                raise ProgressInvariantError(
                    f"progress for job {job_id} cannot decrease from {job.progress} to {progress}"
                )

            job.status = status
            job.progress = progress
            job.result = result
            job.updated_at = utcnow()

            event = ProgressEvent(
                status=status,
                progress=progress,
                data=dump_result(result) if progress >= 100 else None,
            )
            for subscription in list(job.subscribers):
                subscription.push(event)

    def subscribe(self, job_id: str) -> tuple[ProgressEvent, Subscription]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(f"Analysis {job_id} not found")
            subscription = Subscription(job_id)
            job.subscribers.append(subscription)
            snapshot = self._event_for(job)
        return snapshot, subscription

    def unsubscribe(self, job_id: str, subscription: Subscription) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None and subscription in job.subscribers:
                job.subscribers.remove(subscription)
        subscription.close()

    def destroy(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is None:
                return
            subscribers = list(job.subscribers)
            job.subscribers.clear()
        for subscription in subscribers:
            subscription.close()
        logger.info("Removed job %s", job_id)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job, subscribers=[]) if job is not None else None

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            job = self._jobs.get(job_id)
            return len(job.subscribers) if job is not None else 0

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def reset(self) -> None:
        with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
        for job in jobs:
            for subscription in job.subscribers:
                subscription.close()


__all__ = ["ProgressRegistry", "ProgressStore", "Subscription"]
