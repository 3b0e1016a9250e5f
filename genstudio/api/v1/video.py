"""Video job API: create a generation job and poll its status."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Literal, Optional

from genstudio.auth.supabase_auth import verify_jwt
from genstudio.config import settings
from genstudio.jobs.errors import (
    JobAccessDeniedError,
    JobError,
    JobNotFoundError,
    JobPersistenceError,
    JobValidationError,
)
from genstudio.jobs.orchestrator import CreatedJob

router = APIRouter()

# Set by main.py during lifespan
_orchestrator = None


def set_orchestrator(orchestrator):
    global _orchestrator
    _orchestrator = orchestrator


def get_orchestrator():
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Job orchestrator not initialized")
    return _orchestrator


class CreateVideoJobRequest(BaseModel):
    # Optional so an absent prompt is a 400 from validation, not a 422
    prompt: Optional[str] = None
    duration: Literal["5s", "10s", "15s"] = "5s"
    aspect_ratio: Literal["16:9", "9:16", "1:1"] = Field("16:9", alias="aspectRatio")
    asset_group_id: Optional[str] = Field(None, alias="assetGroupId")

    model_config = {"populate_by_name": True}


CREATED_MESSAGE = "Video generation job created. Poll for status updates."


class CreateVideoJobResponse(BaseModel):
    success: bool = True
    jobId: str
    providerJobId: str
    assetId: str
    status: str
    seed: int
    message: str


class JobStatusRequest(BaseModel):
    job_id: Optional[str] = Field(None, alias="jobId")

    model_config = {"populate_by_name": True}


def http_error(exc: JobError) -> HTTPException:
    """Translate a domain error into the matching HTTP error."""
    if isinstance(exc, JobValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, JobAccessDeniedError):
        if settings.hide_foreign_jobs:
            return HTTPException(status_code=404, detail="Job not found")
        return HTTPException(status_code=403, detail=exc.message)
    if isinstance(exc, JobNotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, JobPersistenceError):
        return HTTPException(status_code=500, detail=exc.message)
    return HTTPException(status_code=500, detail="An error occurred processing your request")


async def create_job(orchestrator, user_id: str, prompt, duration, aspect_ratio, app_id) -> CreatedJob:
    try:
        return await orchestrator.create(
            owner_id=user_id,
            prompt=prompt,
            duration=duration,
            aspect_ratio=aspect_ratio,
            app_id=app_id,
        )
    except JobError as exc:
        raise http_error(exc)


async def job_status(orchestrator, user_id: str, job_id: Optional[str]) -> dict:
    try:
        view = await orchestrator.get_status(job_id, owner_id=user_id)
    except JobError as exc:
        raise http_error(exc)
    return {"success": True, "job": view.to_response()}


@router.post("/video/jobs", response_model=CreateVideoJobResponse)
async def submit_video_job(
    request: CreateVideoJobRequest,
    user_id: str = Depends(verify_jwt),
    orchestrator=Depends(get_orchestrator),
):
    """Create a video generation job. Returns before the provider is called."""
    created = await create_job(
        orchestrator,
        user_id,
        request.prompt,
        request.duration,
        request.aspect_ratio,
        request.asset_group_id,
    )
    return CreateVideoJobResponse(
        jobId=created.job_id,
        providerJobId=created.provider_job_id,
        assetId=created.asset_id,
        status=created.status.value,
        seed=created.seed,
        message=CREATED_MESSAGE,
    )


@router.get("/video/jobs/{job_id}")
async def get_video_job(
    job_id: str,
    user_id: str = Depends(verify_jwt),
    orchestrator=Depends(get_orchestrator),
):
    """Current status of a job owned by the caller."""
    return await job_status(orchestrator, user_id, job_id)


@router.post("/video/status")
async def post_video_status(
    request: JobStatusRequest,
    user_id: str = Depends(verify_jwt),
    orchestrator=Depends(get_orchestrator),
):
    return await job_status(orchestrator, user_id, request.job_id)
