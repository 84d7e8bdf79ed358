"""Polling reconciler for processors that only offer a status endpoint.

A poll loop gives up after ``RetryPolicy.max_attempts`` status queries. Giving
up does not fail the job: the row keeps its last non-terminal status and the
API reports it as still processing until a later poll (``resume`` at startup,
or an explicit re-poll) finishes it. The processor-side request is never
cancelled; cancelling a loop only stops observing it.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

import httpx

from creative_studio.jobs.errors import InvalidTransition, ProcessorError
from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.jobs.store import JobStore
from creative_studio.processors.base import LipsyncProcessor, ProcessorState, result_urls
from creative_studio.storage.object_store import ObjectStore, artifact_key, extension_for

logger = logging.getLogger(__name__)

Downloader = Callable[[str], Tuple[bytes, str]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 60
    interval_seconds: float = 10.0


class PollOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    ALREADY_TERMINAL = "already_terminal"
    ALREADY_RUNNING = "already_running"
    NOT_FOUND = "not_found"


def http_download(url: str) -> Tuple[bytes, str]:
    """Fetch a result artifact. Returns (body, content type)."""
    response = httpx.get(url, timeout=120.0, follow_redirects=True)
    response.raise_for_status()
    content_type = response.headers.get("content-type", "application/octet-stream")
    return response.content, content_type.split(";")[0].strip()


class PollingReconciler:
    def __init__(
        self,
        store: JobStore,
        storage: ObjectStore,
        processor: LipsyncProcessor,
        policy: RetryPolicy = RetryPolicy(),
        *,
        download: Downloader = http_download,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._storage = storage
        self._processor = processor
        self.policy = policy
        self._download = download
        self._sleep = sleep
        self._lock = threading.Lock()
        self._inflight: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Event loop that runs poll tasks started from worker threads."""
        self._loop = loop

    def is_polling(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._inflight

    def _claim(self, job_id: str) -> bool:
        with self._lock:
            if job_id in self._inflight:
                return False
            self._inflight.add(job_id)
            return True

    def _release(self, job_id: str) -> None:
        with self._lock:
            self._inflight.discard(job_id)

    async def run(self, job_id: str) -> PollOutcome:
        """Poll in the current task until terminal or the attempt bound is hit."""
        if not self._claim(job_id):
            return PollOutcome.ALREADY_RUNNING
        try:
            return await self._poll(job_id)
        finally:
            self._release(job_id)

    def start(self, job_id: str) -> bool:
        """Poll in a background task. Returns False if a poll for this job is running.

        Safe to call from a worker thread once a loop is bound.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        loop = running or self._loop
        if loop is None:
            raise RuntimeError("PollingReconciler has no event loop to run on")
        if not self._claim(job_id):
            return False
        if running is not None:
            self._loop = self._loop or running
            self._spawn(job_id)
        else:
            try:
                loop.call_soon_threadsafe(self._spawn, job_id)
            except RuntimeError:
                self._release(job_id)
                raise
        return True

    def _spawn(self, job_id: str) -> None:
        self._tasks[job_id] = asyncio.get_running_loop().create_task(self._background(job_id))

    async def resume(self, limit: int = 100) -> int:
        """Start a poll for every PROCESSING lipsync job; returns how many started."""
        loop = asyncio.get_running_loop()
        self._loop = self._loop or loop
        jobs = await loop.run_in_executor(
            None, self._store.list_by_status, JobKind.LIPSYNC, JobStatus.PROCESSING, limit
        )
        started = sum(1 for job in jobs if job.external_reference and self.start(job.id))
        if started:
            logger.info("Resumed polling for %d open lipsync job(s)", started)
        return started

    def cancel(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def stop(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _background(self, job_id: str) -> None:
        try:
            outcome = await self._poll(job_id)
            logger.info("Poll loop for job %s ended: %s", job_id, outcome.value)
        except asyncio.CancelledError:
            logger.info("Poll loop for job %s cancelled", job_id)
            raise
        except Exception:
            logger.exception("Poll loop for job %s crashed", job_id)
        finally:
            self._release(job_id)
            self._tasks.pop(job_id, None)

    async def _poll(self, job_id: str) -> PollOutcome:
        loop = asyncio.get_running_loop()
        for attempt in range(1, self.policy.max_attempts + 1):
            job = await loop.run_in_executor(None, self._store.get, job_id)
            if job is None:
                return PollOutcome.NOT_FOUND
            if job.status.is_terminal:
                return PollOutcome.ALREADY_TERMINAL

            status = None
            if job.external_reference:
                try:
                    status = await loop.run_in_executor(
                        None, self._processor.status, job.external_reference
                    )
                except ProcessorError as exc:
                    logger.warning("Status query %d for job %s failed: %s", attempt, job_id, exc)

            if status is not None and status.state == ProcessorState.COMPLETED:
                return await self._complete(job)
            if status is not None and status.state == ProcessorState.FAILED:
                return await self._fail(job, status.error or "Processor reported failure")

            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.interval_seconds)

        logger.warning(
            "Gave up polling job %s after %d attempts; it may still finish",
            job_id, self.policy.max_attempts,
        )
        return PollOutcome.EXHAUSTED

    async def _complete(self, job: Job) -> PollOutcome:
        loop = asyncio.get_running_loop()
        try:
            payload = await loop.run_in_executor(
                None, self._processor.result, job.external_reference
            )
            urls = result_urls(payload)
            if not urls:
                return await self._fail(job, "Processor result contained no artifacts")
            paths = await loop.run_in_executor(None, self._stage, job, urls)
        except ProcessorError as exc:
            return await self._fail(job, str(exc))
        except Exception as exc:
            logger.exception("Staging results for job %s failed", job.id)
            return await self._fail(job, f"Failed to store results: {exc}")

        try:
            await loop.run_in_executor(None, lambda: self._store.transition(
                job.id, JobStatus.COMPLETED,
                expected=[JobStatus.PROCESSING], output=paths[0], artifacts=paths,
            ))
        except InvalidTransition as exc:
            logger.info("Poll result for job %s not applied: %s", job.id, exc)
            return PollOutcome.ALREADY_TERMINAL
        return PollOutcome.COMPLETED

    def _stage(self, job: Job, urls) -> list:
        exec_id = str(uuid.uuid4())
        paths = []
        for index, url in enumerate(urls):
            data, content_type = self._download(url)
            key = artifact_key(job.owner, exec_id, index, extension_for(content_type))
            self._storage.upload(key, data, content_type)
            paths.append(key)
        return paths

    async def _fail(self, job: Job, detail: str) -> PollOutcome:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self._store.transition(
                job.id, JobStatus.FAILED,
                expected=[JobStatus.PROCESSING], error_detail=detail,
            ))
        except InvalidTransition as exc:
            logger.info("Poll failure for job %s not applied: %s", job.id, exc)
            return PollOutcome.ALREADY_TERMINAL
        return PollOutcome.FAILED
