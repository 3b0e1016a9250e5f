"""Single-endpoint compatibility API for the playground frontend.

The frontend calls one function URL for both operations and picks one with
``action``:

  POST /functions/v1/generate-video  {"prompt": ..., "action": "create"}
  POST /functions/v1/generate-video  {"jobId": ..., "action": "status"}

This is a thin layer over the /api/v1/video endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Optional

from genstudio.api.v1.video import CREATED_MESSAGE, create_job, get_orchestrator, job_status
from genstudio.auth.supabase_auth import verify_jwt

router = APIRouter()


class GenerateVideoRequest(BaseModel):
    action: str = "create"
    # Loosely typed on purpose; the orchestrator owns validation here
    prompt: Optional[Any] = None
    duration: str = "5s"
    aspect_ratio: str = Field("16:9", alias="aspectRatio")
    app_id: Optional[str] = Field(None, alias="appId")
    job_id: Optional[str] = Field(None, alias="jobId")

    model_config = {"populate_by_name": True}


@router.post("/functions/v1/generate-video")
async def generate_video(
    request: GenerateVideoRequest,
    user_id: str = Depends(verify_jwt),
    orchestrator=Depends(get_orchestrator),
):
    if request.action == "status":
        return await job_status(orchestrator, user_id, request.job_id)

    if request.action != "create":
        raise HTTPException(status_code=400, detail=f"Unknown action '{request.action}'")

    created = await create_job(
        orchestrator,
        user_id,
        request.prompt if isinstance(request.prompt, str) else None,
        request.duration,
        request.aspect_ratio,
        request.app_id,
    )
    return {
        "success": True,
        "jobId": created.job_id,
        "providerJobId": created.provider_job_id,
        "mediaAssetId": created.asset_id,
        "assetId": created.asset_id,
        "status": created.status.value,
        "seed": created.seed,
        "prompt": created.prompt,
        "message": CREATED_MESSAGE,
    }
