"""Bounded background worker pool for job pipelines."""

from __future__ import annotations

import asyncio
import logging

from app.core.logging_safety import safe_log_identifier
from app.services.pipeline import ProcessingOrchestrator

logger = logging.getLogger(__name__)


class QueueFullError(Exception):
    """The pool cannot accept another job right now."""


class JobWorkerPool:
    """Runs at most ``concurrency`` pipelines at once from a bounded backlog."""

    def __init__(
        self,
        *,
        orchestrator: ProcessingOrchestrator,
        concurrency: int,
        queue_size: int,
        job_timeout_seconds: float | None,
    ) -> None:
        self._orchestrator = orchestrator
        self._concurrency = concurrency
        self._queue_size = queue_size
        self._job_timeout_seconds = job_timeout_seconds
        self._queue: asyncio.Queue[str] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._active = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def active_jobs(self) -> int:
        return self._active

    @property
    def backlog(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def has_capacity(self) -> bool:
        return self._queue is not None and self.running and not self._queue.full()

    def submit(self, job_id: str) -> None:
        if self._queue is None or not self.running:
            raise QueueFullError("Processing queue is not running")
        try:
            self._queue.put_nowait(job_id)
        except asyncio.QueueFull as exc:
            raise QueueFullError("Processing queue is full") from exc
        logger.info(
            "pool.enqueued job_id=%s backlog=%s active=%s",
            safe_log_identifier(job_id, prefix="jid"),
            self._queue.qsize(),
            self._active,
        )

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._workers = [
            asyncio.create_task(self._worker(index, self._queue), name=f"job-worker-{index}")
            for index in range(self._concurrency)
        ]
        logger.info("pool.started workers=%s queue_size=%s", self._concurrency, self._queue_size)

    async def stop(self) -> None:
        if not self.running:
            return
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        dropped = self.backlog
        self._queue = None
        logger.info("pool.stopped dropped_pending=%s", dropped)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, index: int, queue: asyncio.Queue[str]) -> None:
        while True:
            job_id = await queue.get()
            self._active += 1
            try:
                await self._orchestrator.process(job_id, timeout_seconds=self._job_timeout_seconds)
            except Exception:
                logger.exception(
                    "pool.job_crashed worker=%s job_id=%s",
                    index,
                    safe_log_identifier(job_id, prefix="jid"),
                )
            finally:
                self._active -= 1
                queue.task_done()


__all__ = ["JobWorkerPool", "QueueFullError"]
