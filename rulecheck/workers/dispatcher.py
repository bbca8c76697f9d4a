"""Admission controlled execution of recognition calls."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, TypeVar

from rulecheck.core.errors import UpstreamTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecognitionDispatcher:
    """Run at most ``limit`` tasks at once, admitting waiters in FIFO order.

    A finished task hands its slot directly to the oldest waiter, so a newly
    submitted task can never overtake one that is already queued. The
    ``timeout`` applies to task execution only, not to time spent queued.
    """

    def __init__(self, limit: int = 3, *, timeout: float | None = None) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._timeout = timeout
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self.peak = 0
        self.submitted = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    # ------------------------------------------------------------------
    # admission
    # ------------------------------------------------------------------
    async def _acquire(self) -> None:
        if self._active < self._limit and not self._waiters:
            self._admit()
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # slot was handed over just before cancellation
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _admit(self) -> None:
        self._active += 1
        self.peak = max(self.peak, self._active)

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # slot transfers to the waiter; active count is unchanged
                waiter.set_result(None)
                return
        self._active -= 1

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """Run ``task`` once a slot is free and return its result.

        Exceptions raised by the task propagate to this caller only.
        """

        self.submitted += 1
        await self._acquire()
        logger.debug("Admitted recognition task (%d/%d active)", self._active, self._limit)
        try:
            if self._timeout is None:
                return await task()
            try:
                return await asyncio.wait_for(task(), self._timeout)
            except asyncio.TimeoutError as exc:
                raise UpstreamTimeout(f"Recognition timed out after {self._timeout:g}s") from exc
        finally:
            self._release()


__all__ = ["RecognitionDispatcher"]
