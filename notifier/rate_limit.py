"""Serialized work queue with a minimum spacing between task starts."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

LOGGER = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class RateLimitedQueue:
    """Single-worker queue that starts at most one job per spacing interval.

    Jobs run strictly one after another. A job that raises does not stop the
    queue; its exception is set on the future returned by submit().
    """

    def __init__(
        self,
        spacing_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._spacing_seconds = spacing_seconds
        self._clock = clock
        self._sleep = sleep
        self._queue: asyncio.Queue[tuple[Job, asyncio.Future[Any]]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._last_start: float | None = None

    def submit(self, job: Job) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((job, future))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="rate-limited-queue")
        return future

    async def drain(self) -> None:
        """Wait until every submitted job has finished."""

        await self._queue.join()

    async def close(self) -> None:
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _run(self) -> None:
        while True:
            job, future = await self._queue.get()
            try:
                await self._wait_for_slot()
                self._last_start = self._clock()
                result = await job()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as exc:  # noqa: BLE001
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def _wait_for_slot(self) -> None:
        if self._last_start is None:
            return
        remaining = self._spacing_seconds - (self._clock() - self._last_start)
        if remaining > 0:
            await self._sleep(remaining)
