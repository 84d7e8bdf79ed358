"""Style-replication jobs: queue a job, or run one worker cycle."""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from creative_studio.api.deps import get_services
from creative_studio.auth.supabase_auth import current_user_id, require_service_role
from creative_studio.services import Services

router = APIRouter()


class StyleJobRequest(BaseModel):
    prompt: Optional[str] = None
    inspiration_images: List[str] = Field(default_factory=list, alias="inspirationImages")
    n: int = 1
    size: Optional[str] = None

    model_config = {"populate_by_name": True}


@router.post("/style-jobs")
async def submit_style_job(
    request: StyleJobRequest,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    """Queue a style job. The in-process worker is woken immediately; without
    one the job waits for POST /style-jobs/process."""
    job = await services.style_submitter.submit_and_wake(
        user_id,
        request.prompt,
        request.inspiration_images,
        n=request.n,
        size=request.size,
    )
    return {
        "success": True,
        "jobId": job.id,
        "status": job.status.value,
        "message": "Job submitted successfully",
    }


@router.post("/style-jobs/process", dependencies=[Depends(require_service_role)])
async def process_style_jobs(services: Services = Depends(get_services)):
    """Run one worker cycle: claim the oldest QUEUED style job and process it.

    Meant for an external scheduler.
    """
    if services.worker is None:
        raise HTTPException(status_code=503, detail="Image processor not configured")

    loop = asyncio.get_running_loop()
    job = await loop.run_in_executor(None, services.worker.run_once)
    if job is None:
        return {"success": True, "message": "No jobs to process"}
    return {
        "success": job.error_detail is None,
        "jobId": job.id,
        "status": job.status.value,
        "execId": job.output,
        "error": job.error_detail,
    }
