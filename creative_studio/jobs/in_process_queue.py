"""In-process dispatcher for QUEUED style jobs.

The queue carries wake-up signals only; the job rows themselves stay in the
job store, and the worker claims them there. That keeps the claim step the
single mutual-exclusion gate even when several instances (or an external
scheduler) run workers against the same table.
"""

import asyncio
import logging
from typing import Callable, Optional

from creative_studio.jobs.dispatcher import JobDispatcher
from creative_studio.jobs.models import Job

logger = logging.getLogger(__name__)


class InProcessQueue(JobDispatcher):
    """Local async worker loop. Processes claimed jobs one at a time."""

    def __init__(self, worker_fn: Callable[[], Optional[Job]], sweep_seconds: float = 30.0):
        """
        worker_fn: callable() -> Optional[Job]
            Synchronous function that claims and processes one queued job,
            returning None when nothing was queued. Runs in a thread executor
            so the image API call does not block the event loop.
        """
        self._wake: asyncio.Queue[str] = asyncio.Queue()
        self._worker_fn = worker_fn
        self._sweep_seconds = sweep_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def submit(self, job: Job) -> str:
        await self._wake.put(job.id)
        return job.id

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _drain(self) -> None:
        """Run worker cycles until the store has no QUEUED job left."""
        loop = asyncio.get_running_loop()
        while self._running:
            try:
                job = await loop.run_in_executor(None, self._worker_fn)
            except Exception:
                logger.exception("Style worker cycle crashed")
                return
            if job is None:
                return

    async def _worker_loop(self) -> None:
        """Wake on submit, or every sweep interval to pick up jobs queued elsewhere."""
        while self._running:
            try:
                await asyncio.wait_for(self._wake.get(), timeout=self._sweep_seconds)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break
            # Coalesce wake-ups that arrived together.
            while not self._wake.empty():
                self._wake.get_nowait()
            await self._drain()
