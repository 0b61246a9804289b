"""Detached work queue for processing jobs.

Submissions enqueue a (content_id, source_url, run_id) item and return at
once; a fixed pool of asyncio worker tasks runs the handler for each item.
Pollers only ever read job state, never the queue.
"""

import asyncio
from collections.abc import Awaitable, Callable

from src.utils.logging import get_logger

logger = get_logger(__name__)

JobHandler = Callable[[str, str, str], Awaitable[None]]


class JobQueue:
    """In-process job queue served by ``worker_count`` worker tasks.

    Workers are started lazily on the first enqueue so the queue can be built
    outside a running event loop. The handler is expected to record its own
    failures; anything it raises is logged and the worker moves on.
    """

    def __init__(self, handler: JobHandler | None = None, worker_count: int = 4):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self.handler = handler
        self.worker_count = worker_count
        self._queue: asyncio.Queue[tuple[str, str, str]] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []

    def bind(self, handler: JobHandler) -> None:
        self.handler = handler

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    def start(self) -> None:
        """Start the worker tasks. Must be called from a running event loop."""
        if self.running:
            return
        if self.handler is None:
            raise RuntimeError("JobQueue has no handler bound")

        self._workers = [
            asyncio.create_task(self._worker(index), name=f"job-worker-{index}")
            for index in range(self.worker_count)
        ]
        logger.info("job_queue_started", worker_count=self.worker_count)

    async def enqueue(self, content_id: str, source_url: str, run_id: str) -> None:
        self.start()
        await self._queue.put((content_id, source_url, run_id))
        logger.info("job_enqueued", content_id=content_id, pending=self.pending)

    async def join(self) -> None:
        """Wait until every enqueued job has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the workers. Jobs still queued are not run."""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("job_queue_stopped", abandoned=self.pending)

    async def _worker(self, index: int) -> None:
        while True:
            content_id, source_url, run_id = await self._queue.get()
            try:
                await self.handler(content_id, source_url, run_id)
            except Exception as e:
                logger.exception(
                    "job_handler_crashed",
                    worker=index,
                    content_id=content_id,
                    error_type=type(e).__name__,
                )
            finally:
                self._queue.task_done()
