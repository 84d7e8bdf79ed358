"""Job submission: validate, stage inputs, create the row, hand off.

Submitters return the job id as soon as the hand-off is done; they never wait
for the external processor to finish.
"""

import asyncio
import logging
import uuid
from typing import Callable, List, Optional
from urllib.parse import urlencode

from creative_studio.jobs.dispatcher import JobDispatcher
from creative_studio.jobs.errors import (
    InvalidTransition,
    JobNotFound,
    ProcessorError,
    ValidationFailed,
)
from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.jobs.store import JobStore
from creative_studio.jobs.validation import (
    MediaRequirement,
    MediaUpload,
    clamp_variations,
    decode_base64_image,
    validate_media,
)
from creative_studio.processors.base import LipsyncProcessor
from creative_studio.storage.object_store import ObjectStore, artifact_key, extension_for

logger = logging.getLogger(__name__)

# Signed input URLs must outlive the processor's queue time.
PROCESSOR_URL_TTL_SECONDS = 24 * 3600


class LipsyncSubmitter:
    """Video + audio -> lipsync job on the fal queue.

    In webhook mode the callback URL embeds the job id (and the shared secret
    when one is configured). In poll mode no callback is sent and
    ``on_dispatched`` is expected to start a poll loop.
    """

    def __init__(
        self,
        store: JobStore,
        storage: ObjectStore,
        processor: LipsyncProcessor,
        *,
        public_base_url: str,
        max_upload_bytes: int,
        webhook_secret: Optional[str] = None,
        use_webhook: bool = True,
        on_dispatched: Optional[Callable[[Job], None]] = None,
    ):
        self._store = store
        self._storage = storage
        self._processor = processor
        self._public_base_url = public_base_url.rstrip("/")
        self._webhook_secret = webhook_secret
        self._use_webhook = use_webhook
        self._on_dispatched = on_dispatched
        self.max_upload_bytes = max_upload_bytes
        self.requirements = [
            MediaRequirement("videoFile", "video/", max_upload_bytes),
            MediaRequirement("audioFile", "audio/", max_upload_bytes),
        ]

    def webhook_url(self, job_id: str) -> str:
        params = {"job_id": job_id}
        if self._webhook_secret:
            params["token"] = self._webhook_secret
        return f"{self._public_base_url}/api/v1/webhooks/lipsync?{urlencode(params)}"

    def submit(self, owner: str, video: Optional[MediaUpload],
               audio: Optional[MediaUpload]) -> Job:
        """Validate and stage both files, create the row, dispatch it.

        Validation or staging failures raise before any row exists. A
        processor rejection leaves a FAILED row behind.
        """
        validate_media({"videoFile": video, "audioFile": audio}, self.requirements)

        job_id = str(uuid.uuid4())
        inputs = {}
        for index, (name, upload) in enumerate((("video", video), ("audio", audio))):
            key = artifact_key(owner, job_id, index,
                               extension_for(upload.content_type, upload.filename))
            self._storage.upload_file(key, upload.path, upload.content_type)
            inputs[f"{name}_path"] = key
            inputs[f"{name}_url"] = self._storage.signed_url(key, PROCESSOR_URL_TTL_SECONDS)
            inputs[f"{name}_filename"] = upload.filename

        job = self._store.create(
            Job(id=job_id, owner=owner, kind=JobKind.LIPSYNC,
                status=JobStatus.PENDING, inputs=inputs)
        )
        logger.info("Created lipsync job %s for user %s", job.id, owner)
        return self.dispatch(job.id)

    def dispatch(self, job_id: str) -> Job:
        """Send a PENDING job to the processor exactly once.

        The external reference is the idempotency anchor: a job that already
        has one is never submitted again.
        """
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.external_reference or job.status != JobStatus.PENDING:
            raise InvalidTransition(
                f"Job {job_id} was already dispatched ({job.status.value})"
            )

        callback = self.webhook_url(job.id) if self._use_webhook else None
        try:
            request_id = self._processor.submit(
                job.inputs["video_url"], job.inputs["audio_url"], callback
            )
        except ProcessorError as exc:
            logger.warning("Processor rejected lipsync job %s: %s", job.id, exc)
            return self._store.transition(
                job.id, JobStatus.FAILED,
                expected=[JobStatus.PENDING], error_detail=str(exc),
            )

        job = self._store.transition(
            job.id, JobStatus.PROCESSING,
            expected=[JobStatus.PENDING], external_reference=request_id,
        )
        logger.info("Lipsync job %s accepted as %s", job.id, request_id)
        if self._on_dispatched is not None:
            self._on_dispatched(job)
        return job


class StyleJobSubmitter:
    """Prompt + inspiration images -> QUEUED style job for the worker."""

    def __init__(
        self,
        store: JobStore,
        storage: ObjectStore,
        dispatcher: Optional[JobDispatcher],
        *,
        max_inspiration_images: int = 10,
        default_size: str = "1024x1024",
    ):
        self._store = store
        self._storage = storage
        self._dispatcher = dispatcher
        self._max_images = max_inspiration_images
        self._default_size = default_size

    def submit(self, owner: str, prompt: Optional[str],
               inspiration_images: Optional[List[str]] = None,
               n: int = 1, size: Optional[str] = None) -> Job:
        problems = []
        if not prompt or not prompt.strip():
            problems.append("Missing required field: prompt")
        inspiration_images = inspiration_images or []
        if len(inspiration_images) > self._max_images:
            problems.append(f"At most {self._max_images} inspiration images are allowed")
        if problems:
            raise ValidationFailed(problems)

        decoded = [
            decode_base64_image(img, f"inspiration image {i}")
            for i, img in enumerate(inspiration_images)
        ]

        job_id = str(uuid.uuid4())
        insp_paths = []
        for i, data in enumerate(decoded):
            key = artifact_key(owner, f"inspiration/{job_id}", i, ".png")
            self._storage.upload(key, data, "image/png")
            insp_paths.append(key)

        job = self._store.create(Job(
            id=job_id,
            owner=owner,
            kind=JobKind.STYLE,
            status=JobStatus.QUEUED,
            inputs={
                "prompt": prompt,
                "insp_paths": insp_paths,
                "n": clamp_variations(n),
                "size": size or self._default_size,
            },
        ))
        logger.info("Queued style job %s for user %s with %d inspiration image(s)",
                    job.id, owner, len(insp_paths))
        return job

    async def submit_and_wake(self, owner: str, prompt: Optional[str],
                              inspiration_images: Optional[List[str]] = None,
                              n: int = 1, size: Optional[str] = None) -> Job:
        """Queue the job and nudge the in-process worker.

        If no dispatcher is running the row stays QUEUED until an external
        scheduler triggers a worker cycle.
        """
        loop = asyncio.get_running_loop()
        job = await loop.run_in_executor(
            None, self.submit, owner, prompt, inspiration_images, n, size
        )
        if self._dispatcher is not None:
            await self._dispatcher.submit(job)
        return job
