"""Job and media asset data models for async video generation."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional
from pydantic import BaseModel, Field
import uuid


class JobStatus(str, Enum):
    """Lifecycle status shared by video jobs and their media assets."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def ordinal(self) -> int:
        return _ORDINALS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


_ORDINALS = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}

TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED}
)

# Legal edges of the job state machine
TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def predecessors(target: JobStatus) -> FrozenSet[JobStatus]:
    """Statuses from which ``target`` may legally be entered."""
    return frozenset(s for s, nexts in TRANSITIONS.items() if target in nexts)


def can_mirror(current: JobStatus, target: JobStatus) -> bool:
    """Asset mirror writes only move forward; equal status is an idempotent no-op."""
    return not current.is_terminal and target.ordinal > current.ordinal


def utcnow() -> datetime:
    return datetime.utcnow()


class MediaAsset(BaseModel):
    """Output asset owned by the asset collaborator; the job only mirrors into it."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    app_id: Optional[str] = None
    type: str = "video"
    source: str = "generated"
    prompt: Optional[str] = None
    provider: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    file_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class GenerationJob(BaseModel):
    """Tracks the lifecycle of one provider-backed generation request."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    asset_id: str
    provider_job_id: Optional[str] = None
    provider_handle: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    error_message: Optional[str] = None
    seed: int = 0
    request_payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
