"""Video generation through the Replicate predictions API."""

import logging
from typing import Any, Dict, Optional

import httpx

from genstudio.providers.base import (
    DispatchError,
    ProviderAdapter,
    ProviderHandle,
    ProviderRequest,
    ProviderState,
    ProviderStatus,
    ProviderUnavailableError,
    sanitize_detail,
)

logger = logging.getLogger(__name__)

# Replicate status vocabulary -> normalized provider state
_STATE_MAP = {
    "starting": ProviderState.QUEUED,
    "processing": ProviderState.RUNNING,
    "succeeded": ProviderState.SUCCEEDED,
    "failed": ProviderState.FAILED,
    "canceled": ProviderState.FAILED,
}


class ReplicateProvider(ProviderAdapter):
    """Adapter for any Replicate text-to-video model version."""

    name = "replicate"

    def __init__(
        self,
        api_token: str,
        model_version: str,
        base_url: str = "https://api.replicate.com/v1",
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_token or not model_version:
            raise ValueError(
                "REPLICATE_API_TOKEN and REPLICATE_MODEL_VERSION must be set"
            )
        self._model_version = model_version
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            },
        )

    async def dispatch(self, request: ProviderRequest) -> ProviderHandle:
        body = {
            "version": self._model_version,
            "input": {
                "prompt": request.prompt,
                "duration": int(request.duration.rstrip("s")),
                "aspect_ratio": request.aspect_ratio,
                "seed": request.seed,
            },
        }
        data = await self._request("POST", "/predictions", json=body, dispatching=True)
        prediction_id = data.get("id")
        if not prediction_id:
            raise DispatchError("Video provider did not accept the request")
        logger.info(
            "Replicate prediction %s started for job %s",
            prediction_id,
            request.provider_job_id,
        )
        return ProviderHandle(id=prediction_id, seed=request.seed)

    async def poll(self, handle: ProviderHandle) -> ProviderStatus:
        data = await self._request("GET", f"/predictions/{handle.id}")
        return self.normalize(data)

    async def cancel(self, handle: ProviderHandle) -> bool:
        try:
            await self._request("POST", f"/predictions/{handle.id}/cancel")
        except (DispatchError, ProviderUnavailableError) as exc:
            logger.warning("Cancel of prediction %s failed: %s", handle.id, exc.message)
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def normalize(data: Dict[str, Any]) -> ProviderStatus:
        """Translate a prediction document into a ``ProviderStatus``."""
        raw = data.get("status", "")
        state = _STATE_MAP.get(raw, ProviderState.QUEUED)

        if state == ProviderState.SUCCEEDED:
            output = data.get("output")
            if isinstance(output, list):
                output = output[0] if output else None
            if not isinstance(output, str) or not output:
                return ProviderStatus(
                    state=ProviderState.FAILED,
                    error_detail="Video provider returned no output",
                )
            return ProviderStatus(state=state, output_url=output)

        if state == ProviderState.FAILED:
            if raw == "canceled":
                detail = "Video generation was canceled by the provider"
            else:
                detail = sanitize_detail(data.get("error"))
            return ProviderStatus(state=state, error_detail=detail)

        return ProviderStatus(state=state)

    async def _request(
        self, method: str, path: str, json: Optional[dict] = None, dispatching: bool = False
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("Replicate %s %s transport error: %r", method, path, exc)
            raise ProviderUnavailableError() from exc

        if response.status_code >= 500 or response.status_code == 429:
            logger.warning("Replicate %s %s returned %d", method, path, response.status_code)
            raise ProviderUnavailableError()
        if response.status_code >= 400:
            logger.warning(
                "Replicate %s %s rejected (%d): %s",
                method,
                path,
                response.status_code,
                response.text[:500],
            )
            if dispatching:
                raise DispatchError(
                    sanitize_detail(
                        _error_detail(response), "Video provider rejected the request"
                    )
                )
            raise ProviderUnavailableError()

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderUnavailableError() from exc


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("detail") or body.get("error")
    return None
