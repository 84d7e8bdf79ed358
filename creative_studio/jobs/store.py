"""Job store interface with in-memory and Supabase implementations.

The store is the single source of truth for job state. Every write goes
through :meth:`JobStore.transition`, which applies the state machine from
``jobs/state.py`` as a compare-and-set on the current status, so concurrent
writers converge instead of overwriting each other.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional

from creative_studio.jobs.errors import InvalidTransition, JobNotFound
from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.jobs.state import apply_transition

logger = logging.getLogger(__name__)

JobListener = Callable[[Job], None]


class JobStore(ABC):
    """Abstract interface for job persistence."""

    def __init__(self) -> None:
        self._listeners: List[JobListener] = []

    def add_listener(self, listener: JobListener) -> None:
        """Register a callback invoked with the new snapshot after every write."""
        self._listeners.append(listener)

    def _notify(self, job: Job) -> None:
        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception:
                logger.exception("Job listener failed for job %s", job.id)

    @abstractmethod
    def create(self, job: Job) -> Job:
        """Insert a new job in an initial state."""
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]:
        """Trusted read used by backend components."""
        ...

    def get_for_owner(self, job_id: str, owner: str) -> Optional[Job]:
        """Row-level access: a job is only visible to its owner."""
        job = self.get(job_id)
        if job is None or job.owner != owner:
            return None
        return job

    @abstractmethod
    def list_for_owner(
        self,
        owner: str,
        kind: Optional[JobKind] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Job]:
        """Newest-first history for one user."""
        ...

    @abstractmethod
    def list_by_status(self, kind: JobKind, status: JobStatus, limit: int = 100) -> List[Job]:
        """Oldest-first jobs of one kind in one status, across all owners."""
        ...

    @abstractmethod
    def transition(
        self,
        job_id: str,
        target: JobStatus,
        *,
        expected: Optional[Iterable[JobStatus]] = None,
        external_reference: Optional[str] = None,
        output: Optional[str] = None,
        artifacts: Optional[List[str]] = None,
        error_detail: Optional[str] = None,
    ) -> Job:
        """Move a job forward along the state machine and return the new row."""
        ...

    @abstractmethod
    def claim_next(self, kind: JobKind, external_reference: str) -> Optional[Job]:
        """Atomically move the oldest QUEUED job of ``kind`` to PROCESSING.

        Only one caller can win a given job; the winner gets the row back with
        ``external_reference`` set.
        """
        ...


class InMemoryJobStore(JobStore):
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        super().__init__()
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> Job:
        if job.status not in (JobStatus.PENDING, JobStatus.QUEUED):
            raise InvalidTransition(f"Job {job.id} must start PENDING or QUEUED")
        with self._lock:
            if job.id in self._jobs:
                raise InvalidTransition(f"Job {job.id} already exists")
            self._jobs[job.id] = job
        self._notify(job)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_for_owner(self, owner, kind=None, limit=20, offset=0):
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.owner == owner and (kind is None or j.kind == kind)
            ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[offset:offset + limit]

    def list_by_status(self, kind, status, limit=100):
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.kind == kind and j.status == status]
        jobs.sort(key=lambda j: j.created_at)
        return jobs[:limit]

    def transition(self, job_id, target, *, expected=None, external_reference=None,
                   output=None, artifacts=None, error_detail=None):
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            updated = apply_transition(
                job,
                target,
                expected=expected,
                external_reference=external_reference,
                output=output,
                artifacts=artifacts,
                error_detail=error_detail,
            )
            self._jobs[job_id] = updated
        self._notify(updated)
        return updated

    def claim_next(self, kind, external_reference):
        with self._lock:
            queued = [
                j for j in self._jobs.values()
                if j.kind == kind and j.status == JobStatus.QUEUED
            ]
            if not queued:
                return None
            oldest = min(queued, key=lambda j: j.created_at)
            claimed = apply_transition(
                oldest, JobStatus.PROCESSING, external_reference=external_reference
            )
            self._jobs[claimed.id] = claimed
        self._notify(claimed)
        return claimed


# ---------------------------------------------------------------------------
# Supabase
# ---------------------------------------------------------------------------

TABLES = {
    JobKind.LIPSYNC: "lipsync_jobs",
    JobKind.STYLE: "style_jobs",
}


def _to_row(job: Job) -> dict:
    return {
        "id": job.id,
        "user_id": job.owner,
        "status": job.status.value,
        "external_reference": job.external_reference,
        "inputs": job.inputs,
        "output": job.output,
        "artifacts": job.artifacts,
        "error_message": job.error_detail,
        "created_at": job.created_at.isoformat(),
        "updated_at": job.updated_at.isoformat(),
    }


def _from_row(row: dict, kind: JobKind) -> Job:
    return Job(
        id=row["id"],
        owner=row["user_id"],
        kind=kind,
        status=JobStatus(row["status"]),
        external_reference=row.get("external_reference"),
        inputs=row.get("inputs") or {},
        output=row.get("output"),
        artifacts=row.get("artifacts") or [],
        error_detail=row.get("error_message"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SupabaseJobStore(JobStore):
    """Job rows in the ``lipsync_jobs`` / ``style_jobs`` tables.

    Writes are conditional updates filtered on the status that was read, so a
    writer that lost a race sees zero affected rows and re-reads.
    """

    _CLAIM_RETRIES = 3

    def __init__(self, client) -> None:
        super().__init__()
        self._client = client

    def _table(self, kind: JobKind):
        return self._client.table(TABLES[kind])

    def create(self, job: Job) -> Job:
        if job.status not in (JobStatus.PENDING, JobStatus.QUEUED):
            raise InvalidTransition(f"Job {job.id} must start PENDING or QUEUED")
        result = self._table(job.kind).insert(_to_row(job)).execute()
        created = _from_row(result.data[0], job.kind) if result.data else job
        self._notify(created)
        return created

    def get(self, job_id: str) -> Optional[Job]:
        for kind in JobKind:
            result = (
                self._table(kind).select("*").eq("id", job_id).limit(1).execute()
            )
            if result.data:
                return _from_row(result.data[0], kind)
        return None

    def list_for_owner(self, owner, kind=None, limit=20, offset=0):
        kinds = [kind] if kind is not None else list(JobKind)
        jobs: List[Job] = []
        for k in kinds:
            result = (
                self._table(k)
                .select("*")
                .eq("user_id", owner)
                .order("created_at", desc=True)
                .range(0, offset + limit - 1)
                .execute()
            )
            jobs.extend(_from_row(row, k) for row in result.data or [])
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[offset:offset + limit]

    def list_by_status(self, kind, status, limit=100):
        result = (
            self._table(kind)
            .select("*")
            .eq("status", status.value)
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [_from_row(row, kind) for row in result.data or []]

    def _write(self, current: Job, updated: Job) -> Optional[Job]:
        row = _to_row(updated)
        row.pop("id")
        row.pop("created_at")
        result = (
            self._table(current.kind)
            .update(row)
            .eq("id", current.id)
            .eq("status", current.status.value)
            .execute()
        )
        if not result.data:
            return None
        return _from_row(result.data[0], current.kind)

    def transition(self, job_id, target, *, expected=None, external_reference=None,
                   output=None, artifacts=None, error_detail=None):
        current = self.get(job_id)
        if current is None:
            raise JobNotFound(job_id)
        updated = apply_transition(
            current,
            target,
            expected=expected,
            external_reference=external_reference,
            output=output,
            artifacts=artifacts,
            error_detail=error_detail,
        )
        written = self._write(current, updated)
        if written is None:
            latest = self.get(job_id)
            state = latest.status.value if latest else "missing"
            raise InvalidTransition(
                f"Job {job_id} changed concurrently (now {state}); update to "
                f"{target.value} not applied"
            )
        self._notify(written)
        return written

    def claim_next(self, kind, external_reference):
        for _ in range(self._CLAIM_RETRIES):
            result = (
                self._table(kind)
                .select("*")
                .eq("status", JobStatus.QUEUED.value)
                .order("created_at")
                .limit(1)
                .execute()
            )
            if not result.data:
                return None
            current = _from_row(result.data[0], kind)
            claimed = apply_transition(
                current, JobStatus.PROCESSING, external_reference=external_reference
            )
            written = self._write(current, claimed)
            if written is not None:
                self._notify(written)
                return written
            logger.info("Lost claim race for job %s, retrying", current.id)
        return None
