"""Job dispatcher interface for queued (worker-claimed) jobs."""

from abc import ABC, abstractmethod

from creative_studio.jobs.models import Job


class JobDispatcher(ABC):
    """Hands QUEUED jobs to whatever runs the worker (in-process or scheduled)."""

    @abstractmethod
    async def submit(self, job: Job) -> str:
        """Signal that ``job`` is waiting. Returns the job id."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
