"""Provider adapter interface and the normalized types it speaks.

Every external video service is wrapped in a ``ProviderAdapter`` so the
orchestrator only ever sees four provider states and two kinds of error:

  DispatchError            the provider rejected the request (logical)
  ProviderUnavailableError the provider could not be reached (transport)
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

MAX_ERROR_DETAIL_CHARS = 200


class ProviderState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProviderRequest(BaseModel):
    """What gets sent to the provider; mirrors the persisted payload snapshot."""
    provider_job_id: str
    prompt: str
    duration: str
    aspect_ratio: str
    seed: int

    def to_payload(self, timestamp: str) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "duration": self.duration,
            "aspectRatio": self.aspect_ratio,
            "seed": self.seed,
            "timestamp": timestamp,
            "jobId": self.provider_job_id,
            "cache": False,
        }


class ProviderHandle(BaseModel):
    """Identifies a dispatched generation on the provider side."""
    id: str
    seed: int = 0


class ProviderStatus(BaseModel):
    state: ProviderState
    progress_hint: Optional[int] = None
    output_url: Optional[str] = None
    error_detail: Optional[str] = None


class ProviderError(Exception):
    """Base for adapter errors. ``message`` is already sanitized for end users."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DispatchError(ProviderError):
    pass


class ProviderUnavailableError(ProviderError):
    def __init__(self, message: str = "Video provider unreachable"):
        super().__init__(message)


def sanitize_detail(detail: Any, fallback: str = "Video generation failed") -> str:
    """Collapse a provider error payload into a short single-line summary."""
    if not detail:
        return fallback
    text = " ".join(str(detail).split())
    if len(text) > MAX_ERROR_DETAIL_CHARS:
        text = text[: MAX_ERROR_DETAIL_CHARS - 3] + "..."
    return text


class ProviderAdapter(ABC):
    """Abstract interface for an external generation service."""

    name: str = "provider"

    # Whether status reads may re-poll the provider once (read-through refresh)
    supports_refresh: bool = True

    @abstractmethod
    async def dispatch(self, request: ProviderRequest) -> ProviderHandle:
        """Submit a generation request. Never retried by the caller."""
        ...

    @abstractmethod
    async def poll(self, handle: ProviderHandle) -> ProviderStatus:
        """Fetch and normalize the provider's current status."""
        ...

    async def cancel(self, handle: ProviderHandle) -> bool:
        """Best-effort cancellation. Returns False when unsupported."""
        return False

    async def close(self) -> None:
        """Release any pooled connections."""
        return None
