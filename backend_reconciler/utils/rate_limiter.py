"""
Request queue with a fixed minimum spacing between tasks.

One queue per upstream credential/endpoint. Tasks run strictly one at a time
in submission order; after each task completes the drain loop sleeps
interval_sec before starting the next. Not a token bucket: capacity is one
in-flight task per interval.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RequestQueue:
    """FIFO queue drained by a single background task."""

    def __init__(self, interval_sec: float, *, name: str = "default") -> None:
        if interval_sec < 0:
            raise ValueError("interval_sec must be >= 0")
        self._interval = interval_sec
        self._name = name
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = deque()
        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def interval_sec(self) -> float:
        return self._interval

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        """Submit a zero-arg coroutine factory; resolves with its result or exception."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append((task, future))
        if not self._draining:
            self._draining = True
            self._drain_task = loop.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        try:
            while self._queue:
                task, future = self._queue.popleft()
                if future.cancelled():
                    continue
                try:
                    result = await task()
                except asyncio.CancelledError:
                    future.cancel()
                    raise
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
                await asyncio.sleep(self._interval)
        finally:
            self._draining = False

    async def aclose(self) -> None:
        """Stop draining and cancel every caller still waiting."""
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        while self._queue:
            _, future = self._queue.popleft()
            future.cancel()
        self._draining = False
        logger.debug("request_queue_closed", queue=self._name)
