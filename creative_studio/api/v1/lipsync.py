"""Lipsync job submission.

  POST /lipsync/jobs                    multipart videoFile + audioFile
  POST /lipsync/jobs/{job_id}/dispatch  retry the hand-off of a PENDING job
  POST /lipsync/jobs/{job_id}/poll      restart polling for a PROCESSING job
"""

import asyncio
import os
import tempfile
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from creative_studio.api.deps import get_services
from creative_studio.auth.supabase_auth import current_user_id
from creative_studio.jobs.errors import InvalidTransition, JobNotFound
from creative_studio.jobs.models import JobKind, JobStatus
from creative_studio.jobs.validation import MediaUpload
from creative_studio.services import Services

router = APIRouter()

_CHUNK_BYTES = 1024 * 1024


async def read_upload(field: str, file: Optional[UploadFile], max_bytes: int) -> Optional[MediaUpload]:
    """Spool an upload to a temp file in 1 MB chunks, stopping as soon as it exceeds ``max_bytes``."""
    if file is None:
        return None
    ext = os.path.splitext(file.filename or "")[1]
    fd, path = tempfile.mkstemp(prefix="upload-", suffix=ext)
    total = 0
    try:
        with os.fdopen(fd, "wb") as dst:
            while True:
                chunk = await file.read(_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    break
                await run_in_threadpool(dst.write, chunk)
    except BaseException:
        os.remove(path)
        raise
    return MediaUpload(
        field=field,
        filename=file.filename,
        content_type=file.content_type,
        size=total,
        path=path,
    )


def _submitter(services: Services):
    if services.lipsync_submitter is None:
        raise HTTPException(status_code=503, detail="Lipsync processor not configured")
    if services.poller is not None:
        # dispatch runs in the threadpool and starts poll tasks on this loop
        services.poller.bind_loop(asyncio.get_running_loop())
    return services.lipsync_submitter


@router.post("/lipsync/jobs")
async def submit_lipsync_job(
    videoFile: Optional[UploadFile] = File(None),
    audioFile: Optional[UploadFile] = File(None),
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    """Stage both files, create the job and hand it to the processor.

    Returns immediately; follow progress via GET /jobs/{id} or the
    /ws/jobs/{id} subscription.
    """
    submitter = _submitter(services)
    video = audio = None
    try:
        video = await read_upload("videoFile", videoFile, submitter.max_upload_bytes)
        audio = await read_upload("audioFile", audioFile, submitter.max_upload_bytes)
        job = await run_in_threadpool(submitter.submit, user_id, video, audio)
    finally:
        for upload in (video, audio):
            if upload is not None:
                upload.discard()

    if job.status == JobStatus.FAILED:
        # Processor rejected the request; the FAILED row stays in history.
        return JSONResponse(
            status_code=502,
            content={"success": False, "jobId": job.id, "error": job.error_detail},
        )
    return {"success": True, "jobId": job.id, "status": job.status.value}


@router.post("/lipsync/jobs/{job_id}/dispatch")
async def dispatch_lipsync_job(
    job_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    submitter = _submitter(services)
    if await run_in_threadpool(services.store.get_for_owner, job_id, user_id) is None:
        raise JobNotFound(job_id)
    job = await run_in_threadpool(submitter.dispatch, job_id)
    return {"success": job.error_detail is None, "jobId": job.id,
            "status": job.status.value, "error": job.error_detail}


@router.post("/lipsync/jobs/{job_id}/poll")
async def poll_lipsync_job(
    job_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    """Start a fresh poll loop for a job whose previous loop gave up or was lost."""
    if services.poller is None:
        raise HTTPException(status_code=503, detail="Polling is not enabled")
    job = await run_in_threadpool(services.store.get_for_owner, job_id, user_id)
    if job is None or job.kind != JobKind.LIPSYNC:
        raise JobNotFound(job_id)
    if job.status != JobStatus.PROCESSING or not job.external_reference:
        raise InvalidTransition(f"Job {job_id} is {job.status.value}; nothing to poll")

    started = services.poller.start(job_id)
    return {"success": True, "jobId": job_id, "status": job.status.value,
            "polling": True, "started": started}
