"""Persistence for video jobs and their media assets.

Every mutating call is forward-only: a write whose precondition no longer
holds (a stale status, a smaller progress value) is dropped and reported by
returning False instead of raising. The orchestrator relies on this so the
background poll loop and read-through refreshes can race safely.
"""

import asyncio
import functools
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from genstudio.jobs.models import (
    GenerationJob,
    JobStatus,
    MediaAsset,
    can_mirror,
    can_transition,
    predecessors,
    utcnow,
)

ASSETS_TABLE = "media_assets"
JOBS_TABLE = "video_jobs"


class JobStore(ABC):
    """Abstract interface for job/asset persistence (local or Supabase)."""

    @abstractmethod
    async def create_asset(self, asset: MediaAsset) -> MediaAsset:
        ...

    @abstractmethod
    async def delete_asset(self, asset_id: str) -> None:
        ...

    @abstractmethod
    async def get_asset(self, asset_id: str) -> Optional[MediaAsset]:
        ...

    @abstractmethod
    async def create_job(self, job: GenerationJob) -> GenerationJob:
        """Insert a pending job. The returned record carries the durable id."""
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        ...

    @abstractmethod
    async def transition(
        self, job_id: str, status: JobStatus, **fields: Any
    ) -> bool:
        """Move a job to ``status`` if its current status allows it."""
        ...

    @abstractmethod
    async def update_progress(self, job_id: str, progress: int) -> bool:
        """Raise progress of a processing job; never lowers it."""
        ...

    @abstractmethod
    async def record_dispatch(self, job_id: str, provider_handle: str) -> None:
        """Remember the provider's handle and when it was issued.

        Any process can poll the handle later; the dispatch time is where the
        poll loop's timeout budget starts.
        """
        ...

    @abstractmethod
    async def mirror_asset(
        self,
        asset_id: str,
        status: JobStatus,
        file_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Copy the job's status (and output) onto its asset, forward-only."""
        ...


class InMemoryJobStore(JobStore):
    """Process-local store for development and tests."""

    def __init__(self):
        self._assets: Dict[str, MediaAsset] = {}
        self._jobs: Dict[str, GenerationJob] = {}
        self._lock = asyncio.Lock()

    async def create_asset(self, asset: MediaAsset) -> MediaAsset:
        async with self._lock:
            self._assets[asset.id] = asset.model_copy(deep=True)
            return asset.model_copy(deep=True)

    async def delete_asset(self, asset_id: str) -> None:
        async with self._lock:
            self._assets.pop(asset_id, None)

    async def get_asset(self, asset_id: str) -> Optional[MediaAsset]:
        asset = self._assets.get(asset_id)
        return asset.model_copy(deep=True) if asset else None

    async def create_job(self, job: GenerationJob) -> GenerationJob:
        async with self._lock:
            if job.asset_id not in self._assets:
                raise LookupError(f"Asset {job.asset_id} does not exist")
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def transition(self, job_id: str, status: JobStatus, **fields: Any) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not can_transition(job.status, status):
                return False
            self._jobs[job_id] = job.model_copy(update={"status": status, **fields})
            return True

    async def update_progress(self, job_id: str, progress: int) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PROCESSING or progress <= job.progress:
                return False
            job.progress = progress
            return True

    async def record_dispatch(self, job_id: str, provider_handle: str) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.provider_handle = provider_handle
                job.dispatched_at = utcnow()

    async def mirror_asset(
        self,
        asset_id: str,
        status: JobStatus,
        file_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        async with self._lock:
            asset = self._assets.get(asset_id)
            if asset is None or not can_mirror(asset.status, status):
                return False
            asset.status = status
            if file_url is not None:
                asset.file_url = file_url
            if metadata:
                asset.metadata = {**asset.metadata, **metadata}
            return True


class SupabaseJobStore(JobStore):
    """Store backed by the ``media_assets`` and ``video_jobs`` Supabase tables.

    The Supabase client is synchronous, so each query runs in the default
    thread executor to keep the event loop free while the poll loop waits.
    Seed, request payload and provider handle live in the asset's metadata
    because the job table has no columns for them.
    """

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "SupabaseJobStore":
        """Build a store on a service-role client; row ownership is checked in code."""
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"
            )
        from supabase import create_client

        return cls(create_client(settings.supabase_url, settings.supabase_service_role_key))

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def create_asset(self, asset: MediaAsset) -> MediaAsset:
        row = {
            "user_id": asset.user_id,
            "app_id": asset.app_id,
            "type": asset.type,
            "source": asset.source,
            "prompt": asset.prompt,
            "provider": asset.provider,
            "status": asset.status.value,
            "metadata": asset.metadata,
        }
        response = await self._run(
            lambda: self._client.table(ASSETS_TABLE).insert(row).execute()
        )
        return _asset_from_row(response.data[0])

    async def delete_asset(self, asset_id: str) -> None:
        await self._run(
            lambda: self._client.table(ASSETS_TABLE).delete().eq("id", asset_id).execute()
        )

    async def get_asset(self, asset_id: str) -> Optional[MediaAsset]:
        response = await self._run(
            lambda: self._client.table(ASSETS_TABLE)
            .select("*")
            .eq("id", asset_id)
            .limit(1)
            .execute()
        )
        return _asset_from_row(response.data[0]) if response.data else None

    async def create_job(self, job: GenerationJob) -> GenerationJob:
        row = {
            "media_asset_id": job.asset_id,
            "status": job.status.value,
            "progress": job.progress,
            "provider_job_id": job.provider_job_id,
        }
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE).insert(row).execute()
        )
        created = response.data[0]
        return job.model_copy(
            update={
                "id": created["id"],
                "created_at": _parse_ts(created.get("created_at")) or job.created_at,
            }
        )

    async def get_job(self, job_id: str) -> Optional[GenerationJob]:
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE)
            .select("*, media_assets(metadata)")
            .eq("id", job_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _job_from_row(response.data[0])

    async def transition(self, job_id: str, status: JobStatus, **fields: Any) -> bool:
        allowed = sorted(s.value for s in predecessors(status))
        update = {"status": status.value}
        for key, value in fields.items():
            update[key] = _to_column(value)
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE)
            .update(update)
            .eq("id", job_id)
            .in_("status", allowed)
            .execute()
        )
        return bool(response.data)

    async def update_progress(self, job_id: str, progress: int) -> bool:
        response = await self._run(
            lambda: self._client.table(JOBS_TABLE)
            .update({"progress": progress})
            .eq("id", job_id)
            .eq("status", JobStatus.PROCESSING.value)
            .lt("progress", progress)
            .execute()
        )
        return bool(response.data)

    async def record_dispatch(self, job_id: str, provider_handle: str) -> None:
        job = await self.get_job(job_id)
        if job is None:
            return
        asset = await self.get_asset(job.asset_id)
        if asset is None:
            return
        metadata = {
            **asset.metadata,
            "providerHandle": provider_handle,
            "dispatchedAt": _to_column(utcnow()),
        }
        await self._run(
            lambda: self._client.table(ASSETS_TABLE)
            .update({"metadata": metadata})
            .eq("id", asset.id)
            .execute()
        )

    async def mirror_asset(
        self,
        asset_id: str,
        status: JobStatus,
        file_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        allowed = [s.value for s in JobStatus if can_mirror(s, status)]
        update: Dict[str, Any] = {"status": status.value}
        if file_url is not None:
            update["file_url"] = file_url
        if metadata:
            asset = await self.get_asset(asset_id)
            if asset is None:
                return False
            update["metadata"] = {**asset.metadata, **metadata}
        response = await self._run(
            lambda: self._client.table(ASSETS_TABLE)
            .update(update)
            .eq("id", asset_id)
            .in_("status", allowed)
            .execute()
        )
        return bool(response.data)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    """Parse a Postgres timestamp into naive UTC, matching the model defaults."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _to_column(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat() + ("Z" if value.tzinfo is None else "")
    return value


def _asset_from_row(row: Dict[str, Any]) -> MediaAsset:
    return MediaAsset(
        id=row["id"],
        user_id=row["user_id"],
        app_id=row.get("app_id"),
        type=row.get("type") or "video",
        source=row.get("source") or "generated",
        prompt=row.get("prompt"),
        provider=row.get("provider"),
        status=JobStatus(row["status"]),
        file_url=row.get("file_url"),
        metadata=row.get("metadata") or {},
        created_at=_parse_ts(row.get("created_at")) or datetime.utcnow(),
    )


def _job_from_row(row: Dict[str, Any]) -> GenerationJob:
    metadata = (row.get("media_assets") or {}).get("metadata") or {}
    return GenerationJob(
        id=row["id"],
        asset_id=row["media_asset_id"],
        provider_job_id=row.get("provider_job_id"),
        provider_handle=metadata.get("providerHandle"),
        status=JobStatus(row["status"]),
        progress=row.get("progress") or 0,
        error_message=row.get("error_message"),
        seed=metadata.get("seed", 0),
        request_payload=metadata.get("providerPayload") or {},
        created_at=_parse_ts(row.get("created_at")) or datetime.utcnow(),
        started_at=_parse_ts(row.get("started_at")),
        dispatched_at=_parse_ts(metadata.get("dispatchedAt")),
        completed_at=_parse_ts(row.get("completed_at")),
    )
