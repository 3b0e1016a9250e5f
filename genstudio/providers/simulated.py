"""Placeholder provider used for demos and local development.

Walks every dispatched handle through a fixed set of progress steps and then
"completes" it with one of a handful of public sample videos chosen by seed,
so different jobs visibly get different outputs.
"""

from collections import OrderedDict
from typing import List, Sequence

from genstudio.providers.base import (
    ProviderAdapter,
    ProviderHandle,
    ProviderRequest,
    ProviderState,
    ProviderStatus,
)

SAMPLE_VIDEOS: List[str] = [
    "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4",
    "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerEscapes.mp4",
    "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerFun.mp4",
    "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerJoyrides.mp4",
    "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerMeltdowns.mp4",
]

DEFAULT_PROGRESS_STEPS = (20, 40, 60, 80)

# Handles whose job stopped polling (crash, restart) are evicted oldest first
MAX_TRACKED_HANDLES = 1000


def sample_video_for_seed(seed: int, videos: Sequence[str] = SAMPLE_VIDEOS) -> str:
    return videos[seed % len(videos)]


class SimulatedProvider(ProviderAdapter):
    """In-memory fake: state lives in this process only."""

    name = "lovable-video"

    def __init__(
        self,
        progress_steps: Sequence[int] = DEFAULT_PROGRESS_STEPS,
        max_tracked: int = MAX_TRACKED_HANDLES,
    ):
        self._steps = list(progress_steps)
        self._max_tracked = max_tracked
        self._polls: "OrderedDict[str, int]" = OrderedDict()

    async def dispatch(self, request: ProviderRequest) -> ProviderHandle:
        self._polls[request.provider_job_id] = 0
        while len(self._polls) > self._max_tracked:
            self._polls.popitem(last=False)
        return ProviderHandle(id=request.provider_job_id, seed=request.seed)

    async def poll(self, handle: ProviderHandle) -> ProviderStatus:
        count = self._polls.get(handle.id)
        if count is None:
            # Unknown after a restart; treat as finished rather than hang forever
            count = len(self._steps)
        self._polls[handle.id] = count + 1

        if count < len(self._steps):
            return ProviderStatus(
                state=ProviderState.RUNNING, progress_hint=self._steps[count]
            )
        self._polls.pop(handle.id, None)
        return ProviderStatus(
            state=ProviderState.SUCCEEDED,
            output_url=sample_video_for_seed(handle.seed),
        )

    async def cancel(self, handle: ProviderHandle) -> bool:
        return self._polls.pop(handle.id, None) is not None
