"""Provider adapter tests: simulated provider and Replicate normalization."""

import json

import httpx
import pytest

from genstudio.providers.base import (
    DispatchError,
    ProviderHandle,
    ProviderRequest,
    ProviderState,
    ProviderUnavailableError,
    sanitize_detail,
)
from genstudio.providers.replicate import ReplicateProvider
from genstudio.providers.simulated import SAMPLE_VIDEOS, SimulatedProvider


def _request(seed: int = 7) -> ProviderRequest:
    return ProviderRequest(
        provider_job_id="abc-123",
        prompt="a red kite over dunes",
        duration="10s",
        aspect_ratio="9:16",
        seed=seed,
    )


def _replicate(handler) -> ReplicateProvider:
    client = httpx.AsyncClient(
        base_url="https://replicate.test/v1", transport=httpx.MockTransport(handler)
    )
    return ReplicateProvider(api_token="tok", model_version="v1", client=client)


# ---------------------------------------------------------------------------
# Simulated
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_simulated_walks_steps_then_picks_video_by_seed():
    provider = SimulatedProvider(progress_steps=(25, 75))
    handle = await provider.dispatch(_request(seed=13))

    first = await provider.poll(handle)
    second = await provider.poll(handle)
    third = await provider.poll(handle)

    assert (first.state, first.progress_hint) == (ProviderState.RUNNING, 25)
    assert (second.state, second.progress_hint) == (ProviderState.RUNNING, 75)
    assert third.state == ProviderState.SUCCEEDED
    assert third.output_url == SAMPLE_VIDEOS[13 % len(SAMPLE_VIDEOS)]


@pytest.mark.asyncio
async def test_simulated_unknown_handle_completes():
    provider = SimulatedProvider()
    status = await provider.poll(ProviderHandle(id="from-before-restart", seed=2))
    assert status.state == ProviderState.SUCCEEDED
    assert status.output_url == SAMPLE_VIDEOS[2]


@pytest.mark.asyncio
async def test_simulated_cancel():
    provider = SimulatedProvider()
    handle = await provider.dispatch(_request())
    assert await provider.cancel(handle) is True
    assert await provider.cancel(handle) is False


@pytest.mark.asyncio
async def test_simulated_forgets_finished_and_abandoned_handles():
    provider = SimulatedProvider(progress_steps=(50,), max_tracked=2)
    finished = await provider.dispatch(_request().model_copy(update={"provider_job_id": "done"}))
    await provider.poll(finished)
    await provider.poll(finished)
    # Finished handles are no longer tracked, so cancel has nothing to drop
    assert await provider.cancel(finished) is False

    handles = []
    for name in ("abandoned", "second", "third"):
        request = _request().model_copy(update={"provider_job_id": name})
        handles.append(await provider.dispatch(request))
    abandoned, second, third = handles

    # The oldest handle was evicted and now reads as finished
    assert (await provider.poll(abandoned)).state == ProviderState.SUCCEEDED
    assert (await provider.poll(third)).progress_hint == 50
    assert await provider.cancel(second) is True


# ---------------------------------------------------------------------------
# Replicate
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_replicate_dispatch_sends_version_and_input():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "pred-1", "status": "starting"})

    provider = _replicate(handler)
    handle = await provider.dispatch(_request(seed=42))

    assert handle.id == "pred-1"
    assert handle.seed == 42
    assert seen["path"] == "/v1/predictions"
    assert seen["body"] == {
        "version": "v1",
        "input": {
            "prompt": "a red kite over dunes",
            "duration": 10,
            "aspect_ratio": "9:16",
            "seed": 42,
        },
    }


@pytest.mark.asyncio
async def test_replicate_dispatch_rejection_is_dispatch_error():
    def handler(request):
        return httpx.Response(422, json={"detail": "input.prompt: too long"})

    with pytest.raises(DispatchError) as info:
        await _replicate(handler).dispatch(_request())
    assert info.value.message == "input.prompt: too long"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [500, 503, 429])
async def test_replicate_server_errors_are_unavailable(status_code):
    def handler(request):
        return httpx.Response(status_code, text="upstream exploded at 0xdeadbeef")

    provider = _replicate(handler)
    with pytest.raises(ProviderUnavailableError) as info:
        await provider.dispatch(_request())
    assert info.value.message == "Video provider unreachable"


@pytest.mark.asyncio
async def test_replicate_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderUnavailableError):
        await _replicate(handler).poll(ProviderHandle(id="pred-1"))


@pytest.mark.asyncio
async def test_replicate_poll_normalizes_status():
    def handler(request):
        return httpx.Response(
            200,
            json={"id": "pred-1", "status": "succeeded", "output": ["https://r.test/out.mp4"]},
        )

    status = await _replicate(handler).poll(ProviderHandle(id="pred-1"))
    assert status.state == ProviderState.SUCCEEDED
    assert status.output_url == "https://r.test/out.mp4"


@pytest.mark.parametrize(
    "doc,state",
    [
        ({"status": "starting"}, ProviderState.QUEUED),
        ({"status": "processing"}, ProviderState.RUNNING),
        ({"status": "something-new"}, ProviderState.QUEUED),
        ({"status": "succeeded", "output": "https://r.test/a.mp4"}, ProviderState.SUCCEEDED),
        ({"status": "succeeded", "output": None}, ProviderState.FAILED),
        ({"status": "failed", "error": "CUDA out of memory"}, ProviderState.FAILED),
        ({"status": "canceled"}, ProviderState.FAILED),
    ],
)
def test_replicate_normalize(doc, state):
    assert ReplicateProvider.normalize(doc).state == state


def test_replicate_failure_detail_is_sanitized():
    status = ReplicateProvider.normalize({"status": "failed", "error": "x" * 1000})
    assert len(status.error_detail) == 200
    assert status.error_detail.endswith("...")


@pytest.mark.asyncio
async def test_replicate_cancel_is_best_effort():
    def handler(request):
        if request.url.path.endswith("/cancel"):
            return httpx.Response(500)
        return httpx.Response(200, json={})

    assert await _replicate(handler).cancel(ProviderHandle(id="pred-1")) is False


def test_replicate_requires_credentials():
    with pytest.raises(ValueError):
        ReplicateProvider(api_token="", model_version="v1")


def test_sanitize_detail():
    assert sanitize_detail(None) == "Video generation failed"
    assert sanitize_detail("  multi\nline\terror ") == "multi line error"
