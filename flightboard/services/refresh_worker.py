"""
Bounded worker pool for fire-and-forget background refreshes.

Stale reads enqueue an airport code and return immediately. A fixed number
of worker tasks drain the queue, so upstream concurrency stays capped under
load. When the queue is full the request is dropped: a refresh for a hot
airport is already queued or running.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class WorkerPoolStats:
    submitted: int = 0
    dropped: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "submitted": self.submitted,
            "dropped": self.dropped,
            "completed": self.completed,
            "failed": self.failed,
        }


class RefreshWorkerPool:
    """asyncio.Queue drained by ``workers`` tasks, each awaiting ``handler(airport)``."""

    def __init__(self, handler: Callable[[str], Awaitable[None]], workers: int = 5, queue_size: int = 20):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.handler = handler
        self.workers = workers
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.stats = WorkerPoolStats()
        self._tasks: List[asyncio.Task] = []
        self._closed = False

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def _ensure_started(self) -> None:
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._worker(i), name=f"refresh-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Started {self.workers} background refresh workers")

    def submit(self, airport_code: str) -> bool:
        """
        Queue a background refresh; never blocks.

        Returns:
            False if the pool is closed or the queue is full
        """
        if self._closed:
            logger.warning(f"Refresh pool closed, dropping refresh for {airport_code}")
            self.stats.dropped += 1
            return False

        self._ensure_started()
        try:
            self.queue.put_nowait(airport_code)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning(f"Refresh queue full, dropping refresh for {airport_code}")
            return False

        self.stats.submitted += 1
        return True

    async def _worker(self, index: int) -> None:
        while True:
            airport_code = await self.queue.get()
            try:
                await self.handler(airport_code)
                self.stats.completed += 1
            except Exception:
                self.stats.failed += 1
                logger.error(f"Background refresh worker {index} failed for {airport_code}", exc_info=True)
            finally:
                self.queue.task_done()

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued refresh has been handled."""
        if not self._tasks:
            return
        await asyncio.wait_for(self.queue.join(), timeout)

    async def close(self, timeout: Optional[float] = 30.0) -> None:
        """Drain queued refreshes, then stop the workers."""
        self._closed = True
        try:
            await self.join(timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out draining {self.queue.qsize()} pending refreshes")
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
