"""Shared test fixtures."""

import pytest
from fastapi import Header, HTTPException
from httpx import ASGITransport, AsyncClient

from genstudio.jobs.background import InProcessRunner
from genstudio.jobs.orchestrator import JobOrchestrator
from genstudio.providers.base import DispatchError, ProviderAdapter
from provider_stubs import ScriptedProvider
from store_stubs import InspectableJobStore


@pytest.fixture
def store() -> InspectableJobStore:
    return InspectableJobStore()


@pytest.fixture
async def runner():
    _runner = InProcessRunner()
    await _runner.start()
    yield _runner
    await _runner.stop()


@pytest.fixture
def make_orchestrator(store, runner):
    """Build an orchestrator with fast polling around a given provider."""

    def _make(
        provider: ProviderAdapter,
        poll_interval_s: float = 0.01,
        timeout_s: float = 2.0,
        dispatch_timeout_s: float = 2.0,
    ):
        return JobOrchestrator(
            store=store,
            provider=provider,
            runner=runner,
            poll_interval_s=poll_interval_s,
            timeout_s=timeout_s,
            dispatch_timeout_s=dispatch_timeout_s,
        )

    return _make


@pytest.fixture
def rejecting_provider() -> ScriptedProvider:
    return ScriptedProvider(dispatch_error=DispatchError("Prompt violates provider policy"))


async def _fake_verify_jwt(authorization: str = Header(None)) -> str:
    """Treat the bearer token itself as the user id."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")
    return authorization[len("Bearer "):]


@pytest.fixture
def app():
    from genstudio.auth.supabase_auth import verify_jwt
    from genstudio.main import app as _app

    _app.dependency_overrides[verify_jwt] = _fake_verify_jwt
    yield _app
    _app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
