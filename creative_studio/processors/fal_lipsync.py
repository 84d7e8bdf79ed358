"""fal.ai queue client for lipsync video generation."""

import logging
from typing import Optional

import fal_client

from creative_studio.jobs.errors import ProcessorError
from creative_studio.processors.base import (
    LipsyncProcessor,
    ProcessorState,
    ProcessorStatus,
)

logger = logging.getLogger(__name__)


class FalLipsyncProcessor(LipsyncProcessor):
    def __init__(self, key: Optional[str], model: str = "fal-ai/sync-lipsync"):
        if not key:
            raise RuntimeError("FAL_KEY must be set for lipsync jobs")
        self._client = fal_client.SyncClient(key=key)
        self._model = model

    def submit(self, video_url, audio_url, webhook_url):
        try:
            handle = self._client.submit(
                self._model,
                arguments={"video_url": video_url, "audio_url": audio_url},
                webhook_url=webhook_url,
            )
        except Exception as exc:
            raise ProcessorError(f"fal submission failed: {exc}") from exc
        logger.info("Submitted %s request %s", self._model, handle.request_id)
        return handle.request_id

    def status(self, request_id):
        try:
            status = self._client.status(self._model, request_id)
        except Exception as exc:
            raise ProcessorError(f"fal status query failed: {exc}") from exc

        if isinstance(status, fal_client.Queued):
            return ProcessorStatus(ProcessorState.QUEUED)
        if isinstance(status, fal_client.InProgress):
            return ProcessorStatus(ProcessorState.IN_PROGRESS)
        error = getattr(status, "error", None)
        if error:
            return ProcessorStatus(ProcessorState.FAILED, error=str(error))
        return ProcessorStatus(ProcessorState.COMPLETED)

    def result(self, request_id):
        try:
            return self._client.result(self._model, request_id)
        except Exception as exc:
            raise ProcessorError(f"fal request {request_id} failed: {exc}") from exc
