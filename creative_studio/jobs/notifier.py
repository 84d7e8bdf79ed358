"""Per-job change feed.

The job store calls :meth:`JobNotifier.publish` after every write; clients
subscribe to a single job id and receive each new snapshot. Delivery is
best-effort and process-local: a subscriber that attaches after the terminal
update has already been published sees nothing, so callers read the row
directly right after subscribing.
"""

import asyncio
import logging
import threading
from typing import Dict, Optional

from creative_studio.jobs.models import Job

logger = logging.getLogger(__name__)


class JobSubscription:
    """Subscription to one job's updates, released on terminal state or close()."""

    def __init__(self, *, notifier: "JobNotifier", job_id: str,
                 loop: asyncio.AbstractEventLoop) -> None:
        self._notifier = notifier
        self.job_id = job_id
        self._loop = loop
        self._queue: "asyncio.Queue[Job]" = asyncio.Queue()
        self._last: Optional[Job] = None
        self.closed = False

    def _deliver(self, job: Job) -> None:
        if self.closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, job)
        except RuntimeError:
            # Event loop is gone; nobody is listening any more.
            self.close()

    def offer(self, job: Job) -> Optional[Job]:
        """Accept a snapshot unless it is older than one already seen.

        Returns the snapshot to hand to the consumer, or None to drop it.
        Closes the subscription once a terminal snapshot is accepted.
        """
        if self.closed:
            return None
        if self._last is not None:
            if self._last.status.is_terminal:
                return None
            if job.updated_at < self._last.updated_at:
                return None
            if job.updated_at == self._last.updated_at and job.status == self._last.status:
                return None
        self._last = job
        if job.status.is_terminal:
            self.close()
        return job

    async def get(self, timeout: Optional[float] = None) -> Optional[Job]:
        """Next accepted snapshot, or None on timeout / after close."""
        while not self.closed or not self._queue.empty():
            try:
                job = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                return None
            accepted = self.offer(job)
            if accepted is not None:
                return accepted
        return None

    def __aiter__(self):
        return self

    async def __anext__(self) -> Job:
        if self._last is not None and self._last.status.is_terminal:
            raise StopAsyncIteration
        job = await self.get()
        if job is None:
            raise StopAsyncIteration
        return job

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._notifier.unsubscribe(self)

    def __enter__(self) -> "JobSubscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class JobNotifier:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: Dict[str, Dict[int, JobSubscription]] = {}

    def subscribe(self, job_id: str) -> JobSubscription:
        """Must be called from the event loop that will consume the subscription."""
        sub = JobSubscription(notifier=self, job_id=job_id, loop=asyncio.get_running_loop())
        with self._lock:
            self._subs.setdefault(job_id, {})[id(sub)] = sub
        return sub

    def unsubscribe(self, sub: JobSubscription) -> None:
        with self._lock:
            by_id = self._subs.get(sub.job_id)
            if not by_id:
                return
            by_id.pop(id(sub), None)
            if not by_id:
                del self._subs[sub.job_id]

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._subs.get(job_id, {}))

    def publish(self, job: Job) -> None:
        """Fan a snapshot out to the job's subscribers. Safe from any thread."""
        with self._lock:
            subs = list(self._subs.get(job.id, {}).values())
        for sub in subs:
            sub._deliver(job)
        if subs:
            logger.debug("Published %s for job %s to %d subscriber(s)",
                         job.status.value, job.id, len(subs))
