"""Style-replication worker.

Claims the oldest QUEUED style job, calls the image processor and waits for
it, stages the results and records the outcome. One job per cycle; the claim
is what stops two workers from processing the same row.
"""

import logging
import uuid
from typing import Optional

from creative_studio.jobs.gallery import GalleryStore
from creative_studio.jobs.models import GeneratedImage, Job, JobKind, JobStatus
from creative_studio.jobs.store import JobStore
from creative_studio.jobs.validation import clamp_variations
from creative_studio.processors.base import ImageProcessor
from creative_studio.processors.openai_images import STYLE_REPLICATION_INSTRUCTIONS
from creative_studio.storage.object_store import ObjectStore, artifact_key

logger = logging.getLogger(__name__)


class StyleJobWorker:
    def __init__(
        self,
        store: JobStore,
        storage: ObjectStore,
        processor: ImageProcessor,
        gallery: GalleryStore,
    ):
        self._store = store
        self._storage = storage
        self._processor = processor
        self._gallery = gallery

    def run_once(self) -> Optional[Job]:
        """Process one queued job. Returns the finished job, or None if the queue was empty."""
        exec_id = str(uuid.uuid4())
        job = self._store.claim_next(JobKind.STYLE, exec_id)
        if job is None:
            logger.debug("No style jobs to process")
            return None

        logger.info("Processing style job %s for user %s (exec %s)", job.id, job.owner, exec_id)
        try:
            paths = self._process(job, exec_id)
        except Exception as exc:
            logger.exception("Style job %s failed", job.id)
            return self._store.transition(
                job.id, JobStatus.FAILED,
                expected=[JobStatus.PROCESSING],
                error_detail=str(exc) or type(exc).__name__,
            )

        finished = self._store.transition(
            job.id, JobStatus.COMPLETED,
            expected=[JobStatus.PROCESSING],
            output=exec_id,
            artifacts=paths,
        )
        logger.info("Style job %s completed with %d image(s)", job.id, len(paths))
        return finished

    def _process(self, job: Job, exec_id: str):
        inputs = job.inputs
        prompt = inputs.get("prompt") or ""
        size = inputs.get("size") or "1024x1024"
        n = clamp_variations(inputs.get("n"))

        references = [self._storage.download(path) for path in inputs.get("insp_paths") or []]
        final_prompt = prompt + STYLE_REPLICATION_INSTRUCTIONS
        if references:
            images = self._processor.edit(final_prompt, references, n, size)
        else:
            images = self._processor.generate(final_prompt, n, size)

        paths = []
        for index, data in enumerate(images):
            key = artifact_key(job.owner, exec_id, index, ".png")
            self._storage.upload(key, data, "image/png")
            paths.append(key)
            try:
                self._gallery.add(GeneratedImage(
                    user_id=job.owner, path=key, prompt=prompt, size=size, exec_id=exec_id,
                ))
            except Exception:
                logger.exception("Gallery insert failed for %s", key)
        return paths
