"""Interfaces for the external AI processors."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ProcessorState(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessorState.COMPLETED, ProcessorState.FAILED)


@dataclass
class ProcessorStatus:
    state: ProcessorState
    error: Optional[str] = None


class LipsyncProcessor(ABC):
    """Queue-style processor: accepts a request, reports back later."""

    @abstractmethod
    def submit(self, video_url: str, audio_url: str, webhook_url: Optional[str]) -> str:
        """Submit a lipsync request. Returns the processor's request id."""
        ...

    @abstractmethod
    def status(self, request_id: str) -> ProcessorStatus:
        ...

    @abstractmethod
    def result(self, request_id: str) -> Dict[str, Any]:
        """Result payload of a completed request."""
        ...


class ImageProcessor(ABC):
    """Synchronous-wait image generation. Returns PNG bytes per variation."""

    @abstractmethod
    def generate(self, prompt: str, n: int, size: str) -> List[bytes]:
        ...

    @abstractmethod
    def edit(self, prompt: str, images: List[bytes], n: int, size: str) -> List[bytes]:
        ...


def result_urls(payload: Any) -> List[str]:
    """Artifact URLs from a processor result payload.

    Understands ``{"video": {"url": ...}}``, ``{"url": ...}`` and
    ``{"images": [{"url": ...}, ...]}``.
    """
    if not isinstance(payload, dict):
        return []
    video = payload.get("video")
    if isinstance(video, dict) and _is_url(video.get("url")):
        return [video["url"]]
    if _is_url(payload.get("url")):
        return [payload["url"]]
    images = payload.get("images")
    if isinstance(images, list):
        return [img["url"] for img in images if isinstance(img, dict) and _is_url(img.get("url"))]
    return []


def _is_url(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())
