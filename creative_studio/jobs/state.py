"""Job state machine shared by the submitter, reconcilers and worker.

    PENDING/QUEUED --(submit succeeds)--> PROCESSING
    PENDING/QUEUED --(submit fails)-----> FAILED
    PROCESSING ----(success)-----------> COMPLETED
    PROCESSING ----(failure)-----------> FAILED

COMPLETED and FAILED are terminal.
"""

from typing import Dict, FrozenSet, Iterable, Optional

from creative_studio.jobs.errors import InvalidTransition
from creative_studio.jobs.models import Job, JobStatus, utcnow

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def apply_transition(
    job: Job,
    target: JobStatus,
    *,
    expected: Optional[Iterable[JobStatus]] = None,
    external_reference: Optional[str] = None,
    output: Optional[str] = None,
    artifacts: Optional[list] = None,
    error_detail: Optional[str] = None,
) -> Job:
    """Return a copy of ``job`` moved to ``target``.

    Enforces the transition table and the record invariants: the external
    reference is write-once, ``output`` exists only on COMPLETED and
    ``error_detail`` only on FAILED. Store implementations call this under
    their own row lock.
    """
    if expected is not None:
        expected = set(expected)
        if job.status not in expected:
            raise InvalidTransition(
                f"Job {job.id} is {job.status.value}, expected one of "
                f"{sorted(s.value for s in expected)}"
            )
    if not can_transition(job.status, target):
        raise InvalidTransition(
            f"Job {job.id} cannot move from {job.status.value} to {target.value}"
        )

    update: dict = {"status": target}

    if external_reference is not None:
        if job.external_reference and job.external_reference != external_reference:
            raise InvalidTransition(
                f"Job {job.id} already has external reference {job.external_reference}"
            )
        update["external_reference"] = external_reference

    if target == JobStatus.COMPLETED:
        if not output:
            raise InvalidTransition(f"Job {job.id} cannot complete without an output")
        update["output"] = output
        update["artifacts"] = list(artifacts) if artifacts else [output]
        update["error_detail"] = None
    elif target == JobStatus.FAILED:
        update["error_detail"] = error_detail or "Unknown error"
        update["output"] = None
        update["artifacts"] = []
    else:
        if output is not None or error_detail is not None:
            raise InvalidTransition(
                f"Job {job.id}: output and error are only set on terminal states"
            )

    update["updated_at"] = utcnow()
    return job.model_copy(update=update)
