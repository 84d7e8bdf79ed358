"""Job record data model for async generation jobs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobKind(str, Enum):
    LIPSYNC = "lipsync"
    STYLE = "style"


class Job(BaseModel):
    """One asynchronous unit of work, tracked from submission to a terminal state."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner: str
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    external_reference: Optional[str] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[str] = None
    artifacts: List[str] = Field(default_factory=list)
    error_detail: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def public_view(self) -> Dict[str, Any]:
        """Shape returned to the owning client."""
        return {
            "job_id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "inputs": self.inputs,
            "output": self.output,
            "artifacts": self.artifacts,
            "error": self.error_detail,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class GeneratedImage(BaseModel):
    """Gallery row written once per artifact of a completed style job."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    path: str
    prompt: str = ""
    size: str = ""
    exec_id: str
    created_at: datetime = Field(default_factory=utcnow)
