"""Video job orchestration.

Owns the job lifecycle:

    pending -> processing -> completed | failed
    pending -> failed

``create`` persists a pending job and returns at once; ``run`` is the
detached background body that dispatches to the provider and polls it until
a terminal state or the hard timeout; ``get_status`` is the read path, which
may re-poll the provider once (read-through refresh).

All state changes go through the store's forward-only writes, so the poll
loop and any number of concurrent status reads can race without ever moving
a job backwards. The orchestrator keeps no per-job state of its own.
"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Callable, Optional

from pydantic import BaseModel

from genstudio.jobs.dispatcher import JobDispatcher
from genstudio.jobs.errors import (
    JobAccessDeniedError,
    JobNotFoundError,
    JobPersistenceError,
    JobValidationError,
)
from genstudio.jobs.ids import generate_provider_job_id, generate_seed
from genstudio.jobs.models import GenerationJob, JobStatus, MediaAsset, utcnow
from genstudio.jobs.store import JobStore
from genstudio.logging_config import bind_job_context
from genstudio.providers.base import (
    ProviderAdapter,
    ProviderError,
    ProviderHandle,
    ProviderRequest,
    ProviderState,
    ProviderStatus,
    ProviderUnavailableError,
    sanitize_detail,
)

logger = logging.getLogger(__name__)

DURATIONS = ("5s", "10s", "15s")
ASPECT_RATIOS = ("16:9", "9:16", "1:1")
DEFAULT_DURATION = "5s"
DEFAULT_ASPECT_RATIO = "16:9"

INITIAL_PROGRESS = 10
SYNTHETIC_PROGRESS_CEILING = 95
MAX_PROGRESS_BEFORE_TERMINAL = 99

TIMEOUT_MESSAGE = "Video provider timed out"
NO_OUTPUT_MESSAGE = "Video provider returned no output"
CRASH_MESSAGE = "Video generation failed"
INTERRUPTED_MESSAGE = "Video generation was interrupted"
UNAVAILABLE_MESSAGE = "Video generation is temporarily unavailable"


class CreatedJob(BaseModel):
    job_id: str
    provider_job_id: str
    asset_id: str
    status: JobStatus
    seed: int
    prompt: str


class JobView(BaseModel):
    """Snapshot returned to pollers."""
    id: str
    status: JobStatus
    progress: int
    error_message: Optional[str] = None
    video_url: Optional[str] = None
    prompt: Optional[str] = None

    def to_response(self) -> dict:
        body = {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "prompt": self.prompt,
        }
        if self.error_message is not None:
            body["errorMessage"] = self.error_message
        if self.video_url is not None:
            body["videoUrl"] = self.video_url
        return body


def _iso(dt) -> str:
    return dt.isoformat() + "Z"


class JobOrchestrator:
    """Drives generation jobs through a provider adapter."""

    def __init__(
        self,
        store: JobStore,
        provider: ProviderAdapter,
        runner: JobDispatcher,
        poll_interval_s: float = 3.0,
        timeout_s: float = 300.0,
        dispatch_timeout_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._provider = provider
        self._runner = runner
        self._poll_interval_s = poll_interval_s
        self._timeout_s = timeout_s
        self._dispatch_timeout_s = dispatch_timeout_s
        self._clock = clock

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self,
        owner_id: str,
        prompt: Optional[str],
        duration: str = DEFAULT_DURATION,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        app_id: Optional[str] = None,
    ) -> CreatedJob:
        """Validate, persist a pending job + asset, and start it in the background."""
        text = prompt.strip() if isinstance(prompt, str) else ""
        if not text:
            raise JobValidationError("Prompt is required")
        if duration not in DURATIONS:
            raise JobValidationError(f"duration must be one of {', '.join(DURATIONS)}")
        if aspect_ratio not in ASPECT_RATIOS:
            raise JobValidationError(
                f"aspectRatio must be one of {', '.join(ASPECT_RATIOS)}"
            )

        provider_job_id = generate_provider_job_id(text)
        seed = generate_seed()
        timestamp = _iso(utcnow())
        request = ProviderRequest(
            provider_job_id=provider_job_id,
            prompt=text,
            duration=duration,
            aspect_ratio=aspect_ratio,
            seed=seed,
        )
        payload = request.to_payload(timestamp)

        logger.info(
            "Video generation request: job=%s prompt=%r duration=%s aspect=%s seed=%d app=%s",
            provider_job_id,
            text[:100],
            duration,
            aspect_ratio,
            seed,
            app_id,
        )

        asset = MediaAsset(
            user_id=owner_id,
            app_id=app_id,
            prompt=text,
            provider=self._provider.name,
            metadata={
                "duration": duration,
                "aspectRatio": aspect_ratio,
                "seed": seed,
                "jobId": provider_job_id,
                "providerPayload": payload,
                "finalPrompt": text,
                "createdAt": timestamp,
            },
        )
        try:
            asset = await self._store.create_asset(asset)
        except Exception:
            logger.exception("Failed to create media asset for %s", provider_job_id)
            raise JobPersistenceError()

        job = GenerationJob(
            asset_id=asset.id,
            provider_job_id=provider_job_id,
            seed=seed,
            request_payload=payload,
        )
        try:
            job = await self._store.create_job(job)
        except Exception:
            logger.exception("Failed to create video job for asset %s", asset.id)
            await self._discard_asset(asset.id)
            raise JobPersistenceError()

        try:
            self._runner.submit(job.id, self.run(job.id))
        except Exception:
            logger.exception("Could not start background task for job %s", job.id)
            await self._fail(job, UNAVAILABLE_MESSAGE)
            raise JobPersistenceError(UNAVAILABLE_MESSAGE)

        logger.info(
            "Video job created: id=%s provider_job_id=%s asset=%s",
            job.id,
            provider_job_id,
            asset.id,
        )
        return CreatedJob(
            job_id=job.id,
            provider_job_id=provider_job_id,
            asset_id=asset.id,
            status=job.status,
            seed=seed,
            prompt=text,
        )

    async def _discard_asset(self, asset_id: str) -> None:
        try:
            await self._store.delete_asset(asset_id)
            return
        except Exception:
            logger.exception("Failed to delete orphan asset %s", asset_id)
        try:
            await self._store.mirror_asset(asset_id, JobStatus.FAILED)
        except Exception:
            logger.exception("Failed to mark orphan asset %s failed", asset_id)

    # ------------------------------------------------------------------
    # Background execution
    # ------------------------------------------------------------------

    async def run(self, job_id: str) -> None:
        """Background body for one job. Never raises except on cancellation."""
        # Runs in its own task, so the binding stays with this job's log lines
        bind_job_context(job_id)
        job = None
        try:
            job = await self._store.get_job(job_id)
            if job is None:
                logger.error("Video job %s vanished before processing", job_id)
                return
            await self._drive(job)
        except asyncio.CancelledError:
            if job is not None:
                await self._fail(job, INTERRUPTED_MESSAGE)
            raise
        except Exception:
            logger.exception("Video processing crashed for job %s", job_id)
            if job is not None:
                await self._fail(job, CRASH_MESSAGE)

    async def _drive(self, job: GenerationJob) -> None:
        started = await self._store.transition(
            job.id,
            JobStatus.PROCESSING,
            started_at=utcnow(),
            progress=INITIAL_PROGRESS,
        )
        if not started:
            logger.info("Video job %s is no longer pending; skipping", job.id)
            return
        await self._store.mirror_asset(job.asset_id, JobStatus.PROCESSING)

        request = ProviderRequest(
            provider_job_id=job.provider_job_id,
            prompt=job.request_payload["prompt"],
            duration=job.request_payload.get("duration", DEFAULT_DURATION),
            aspect_ratio=job.request_payload.get("aspectRatio", DEFAULT_ASPECT_RATIO),
            seed=job.seed,
        )
        try:
            handle = await asyncio.wait_for(
                self._provider.dispatch(request), timeout=self._dispatch_timeout_s
            )
        except ProviderError as exc:
            logger.warning("Dispatch failed for job %s: %s", job.id, exc.message)
            await self._fail(job, exc.message)
            return
        except asyncio.TimeoutError:
            logger.warning(
                "Dispatch for job %s took longer than %.0fs",
                job.id,
                self._dispatch_timeout_s,
            )
            await self._fail(job, TIMEOUT_MESSAGE)
            return

        await self._store.record_dispatch(job.id, handle.id)
        logger.info("Video job %s dispatched as %s", job.id, handle.id)

        try:
            await asyncio.wait_for(
                self._poll_until_terminal(job, handle), timeout=self._timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Video job %s timed out after %.0fs", job.id, self._timeout_s
            )
            await self._fail(job, TIMEOUT_MESSAGE)
            await self._cancel_quietly(handle)

    async def _poll_until_terminal(
        self, job: GenerationJob, handle: ProviderHandle
    ) -> None:
        loop_started = self._clock()
        while True:
            try:
                status = await self._provider.poll(handle)
            except ProviderUnavailableError as exc:
                # Transient; the next tick retries until the hard timeout
                logger.warning("Poll failed for job %s: %s", job.id, exc.message)
            else:
                elapsed = self._clock() - loop_started
                if await self._reconcile(job, status, elapsed):
                    return
            await asyncio.sleep(self._poll_interval_s)

    async def _cancel_quietly(self, handle: ProviderHandle) -> None:
        try:
            await self._provider.cancel(handle)
        except Exception:
            logger.warning("Cancel of provider handle %s failed", handle.id, exc_info=True)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def _reconcile(
        self, job: GenerationJob, status: ProviderStatus, elapsed: Optional[float]
    ) -> bool:
        """Apply one provider observation. Returns True once the job is terminal."""
        if status.state == ProviderState.SUCCEEDED:
            if not status.output_url:
                await self._fail(job, NO_OUTPUT_MESSAGE)
            else:
                await self._complete(job, status.output_url)
            return True

        if status.state == ProviderState.FAILED:
            await self._fail(job, sanitize_detail(status.error_detail))
            return True

        progress = self._estimate_progress(status, elapsed)
        if progress is None:
            return False
        if await self._store.update_progress(job.id, progress):
            return False

        # Rejected write: either progress is already higher or someone else
        # finished the job (e.g. a read-through refresh).
        current = await self._store.get_job(job.id)
        return current is None or current.status.is_terminal

    def _estimate_progress(
        self, status: ProviderStatus, elapsed: Optional[float]
    ) -> Optional[int]:
        if status.progress_hint is not None:
            return max(
                INITIAL_PROGRESS,
                min(int(status.progress_hint), MAX_PROGRESS_BEFORE_TERMINAL),
            )
        if elapsed is None:
            return None
        fraction = min(elapsed / self._timeout_s, 1.0) if self._timeout_s > 0 else 1.0
        return min(
            INITIAL_PROGRESS + int(85 * fraction), SYNTHETIC_PROGRESS_CEILING
        )

    async def _complete(self, job: GenerationJob, output_url: str) -> bool:
        now = utcnow()
        applied = await self._store.transition(
            job.id,
            JobStatus.COMPLETED,
            progress=100,
            completed_at=now,
        )
        if applied:
            await self._store.mirror_asset(
                job.asset_id,
                JobStatus.COMPLETED,
                file_url=output_url,
                metadata={"completedAt": _iso(now)},
            )
            logger.info("Video job %s completed: %s", job.id, output_url)
        return applied

    async def _fail(self, job: GenerationJob, message: str) -> bool:
        """Best-effort transition to failed; never raises."""
        try:
            applied = await self._store.transition(
                job.id,
                JobStatus.FAILED,
                error_message=message,
                completed_at=utcnow(),
            )
            if applied:
                await self._store.mirror_asset(job.asset_id, JobStatus.FAILED)
                logger.warning("Video job %s failed: %s", job.id, message)
            return applied
        except Exception:
            logger.exception("Could not mark video job %s failed", job.id)
            return False

    # ------------------------------------------------------------------
    # Status query
    # ------------------------------------------------------------------

    async def get_status(
        self, job_id: Optional[str], owner_id: str, refresh: bool = True
    ) -> JobView:
        """Current snapshot of a job the caller owns."""
        job_id = job_id.strip() if isinstance(job_id, str) else ""
        if not job_id:
            raise JobValidationError("jobId required for status check")

        job = await self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError()
        asset = await self._store.get_asset(job.asset_id)
        if asset is None or asset.user_id != owner_id:
            raise JobAccessDeniedError()

        if not job.status.is_terminal:
            if refresh:
                await self._refresh(job)
            await self._reap_if_stale(job)
            job = await self._store.get_job(job_id) or job
            asset = await self._store.get_asset(job.asset_id) or asset

        if job.status.is_terminal and not asset.status.is_terminal:
            await self._heal_asset(job)
            asset = await self._store.get_asset(job.asset_id) or asset

        return JobView(
            id=job.id,
            status=job.status,
            progress=job.progress,
            error_message=job.error_message if job.status == JobStatus.FAILED else None,
            video_url=asset.file_url if job.status == JobStatus.COMPLETED else None,
            prompt=asset.prompt,
        )

    async def _refresh(self, job: GenerationJob) -> None:
        if (
            job.status != JobStatus.PROCESSING
            or not job.provider_handle
            or not self._provider.supports_refresh
        ):
            return
        try:
            status = await self._provider.poll(
                ProviderHandle(id=job.provider_handle, seed=job.seed)
            )
        except ProviderError as exc:
            logger.info("Read-through refresh skipped for job %s: %s", job.id, exc.message)
            return
        await self._reconcile(job, status, elapsed=None)

    async def _reap_if_stale(self, job: GenerationJob) -> None:
        """Fail a job whose background task can no longer be running.

        The poll loop never outlives ``timeout_s`` counted from dispatch, and
        dispatch itself is bounded by ``dispatch_timeout_s``. A job still
        unfinished well past those budgets lost its task (e.g. the process
        restarted).
        """
        budget = self._timeout_s + 2 * self._poll_interval_s
        if job.dispatched_at is not None:
            reference = job.dispatched_at
        else:
            reference = job.started_at or job.created_at
            budget += self._dispatch_timeout_s
        if utcnow() - reference <= timedelta(seconds=budget):
            return

        logger.warning("Reaping stale video job %s", job.id)
        if await self._fail(job, TIMEOUT_MESSAGE) and job.provider_handle:
            await self._cancel_quietly(
                ProviderHandle(id=job.provider_handle, seed=job.seed)
            )

    async def _heal_asset(self, job: GenerationJob) -> None:
        """Re-apply the asset mirror for a terminal job whose asset lagged behind."""
        if job.status == JobStatus.FAILED:
            await self._store.mirror_asset(job.asset_id, JobStatus.FAILED)
            return
        if not job.provider_handle:
            return
        try:
            status = await self._provider.poll(
                ProviderHandle(id=job.provider_handle, seed=job.seed)
            )
        except ProviderError:
            return
        if status.state == ProviderState.SUCCEEDED and status.output_url:
            await self._store.mirror_asset(
                job.asset_id, JobStatus.COMPLETED, file_url=status.output_url
            )
