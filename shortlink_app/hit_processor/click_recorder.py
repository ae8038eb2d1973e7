"""
Bounded worker pool for click recording.

Redirects are answered before their click is recorded. The follow-up work
(counter increment, click event, cache refresh) is submitted here and runs
detached from the request that produced it.

Architecture:
- Fixed number of asyncio worker tasks
- Bounded queue; when full the OLDEST pending job is dropped so the newest
  click is kept (click counts are analytics, under-counting is acceptable)
- Every job runs under its own timeout
- stop() drains for a bounded time, then discards what is left
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

ClickJob = Callable[[], Awaitable[None]]


class ClickRecorder:
    """
    Supervised pool of click-recording workers.

    Counters (processed, failed, timed_out, dropped) are plain ints, only
    touched from the event loop the pool was started on.
    """

    def __init__(
        self,
        workers: int = 4,
        queue_size: int = 1000,
        task_timeout: float = 10.0
    ):
        """
        Args:
            workers: Number of concurrent worker tasks
            queue_size: Maximum pending jobs before drop-oldest kicks in
            task_timeout: Seconds a single job may run
        """
        if workers < 1 or queue_size < 1:
            raise ValueError("workers and queue_size must be positive")
        self.worker_count = workers
        self.queue_size = queue_size
        self.task_timeout = task_timeout

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self.running = False

        self.processed = 0
        self.failed = 0
        self.timed_out = 0
        self.dropped = 0

    async def start(self):
        """Start the workers on the running event loop"""
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._run(n), name=f"click-recorder-{n}")
            for n in range(self.worker_count)
        ]
        self.running = True
        logger.info(
            "Click recorder started (%d workers, queue size %d, timeout %.1fs)",
            self.worker_count, self.queue_size, self.task_timeout
        )

    def submit(self, job: ClickJob) -> bool:
        """
        Queue a job without blocking.

        Returns:
            False if the recorder is not running and the job was discarded
        """
        if not self.running:
            logger.warning("Click recorder not running, discarding click job")
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                self.dropped += 1
                logger.warning("Click queue full, dropped oldest job (%d dropped so far)", self.dropped)
            except asyncio.QueueEmpty:
                pass
            self._queue.put_nowait(job)
        return True

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def _run(self, worker_id: int):
        while True:
            job = await self._queue.get()
            try:
                await asyncio.wait_for(job(), timeout=self.task_timeout)
                self.processed += 1
            except asyncio.TimeoutError:
                self.timed_out += 1
                logger.error("Click job timed out after %.1fs (worker %d)", self.task_timeout, worker_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                # Post-response work: nothing to report the failure to
                self.failed += 1
                logger.exception("Click job failed (worker %d)", worker_id)
            finally:
                self._queue.task_done()

    async def join(self):
        """Wait until every queued job has finished"""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, drain_timeout: float = 5.0):
        """
        Stop accepting jobs, drain for up to drain_timeout, then cancel.
        """
        if not self.running:
            return
        self.running = False

        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            discarded = 0
            while True:
                try:
                    self._queue.get_nowait()
                    self._queue.task_done()
                    discarded += 1
                except asyncio.QueueEmpty:
                    break
            logger.warning("Click recorder drain timed out, discarded %d pending jobs", discarded)

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        logger.info(
            "Click recorder stopped (processed=%d failed=%d timed_out=%d dropped=%d)",
            self.processed, self.failed, self.timed_out, self.dropped
        )
