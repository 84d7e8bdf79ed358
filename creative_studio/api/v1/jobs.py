"""Job history and status reads, filtered to the caller's own jobs."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creative_studio.api.deps import get_services
from creative_studio.auth.supabase_auth import current_user_id
from creative_studio.jobs.errors import JobNotFound, StorageError
from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.services import Services

router = APIRouter()

STILL_PROCESSING = "Still processing, check back later"


def _artifact_url(services: Services, ref) -> Optional[str]:
    if not isinstance(ref, str) or not ref:
        return None
    if ref.startswith(("http://", "https://")):
        return ref
    try:
        return services.storage.signed_url(ref, services.signed_url_ttl_seconds)
    except StorageError:
        return None


def awaiting_poll(services: Services, job: Job) -> bool:
    """An open lipsync job that no poll loop is watching right now."""
    return (
        services.poller is not None
        and job.kind == JobKind.LIPSYNC
        and job.status == JobStatus.PROCESSING
        and not services.poller.is_polling(job.id)
    )


def job_response(services: Services, job: Job) -> dict:
    response = job.public_view()
    response["artifact_urls"] = [_artifact_url(services, ref) for ref in job.artifacts]
    if awaiting_poll(services, job):
        response["message"] = STILL_PROCESSING
    return response


# Plain def: store reads block, so FastAPI runs these in its threadpool.
@router.get("/jobs")
def list_jobs(
    kind: Optional[JobKind] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    jobs = services.store.list_for_owner(user_id, kind=kind, limit=limit, offset=offset)
    return {
        "jobs": [job_response(services, job) for job in jobs],
        "count": len(jobs),
    }


@router.get("/jobs/{job_id}")
def get_job(
    job_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    """Current state of one job. Other users' jobs read as not found."""
    job = services.store.get_for_owner(job_id, user_id)
    if job is None:
        raise JobNotFound(job_id)
    return job_response(services, job)
