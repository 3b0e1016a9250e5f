"""GenStudio video job service - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from genstudio.config import settings
from genstudio.logging_config import configure_logging
from genstudio.api.v1.router import v1_router, generate_video_compat
from genstudio.api.v1.health import router as health_root_router
from genstudio.api.v1 import health as health_api
from genstudio.api.v1 import video as video_api
from genstudio.jobs.background import InProcessRunner
from genstudio.jobs.orchestrator import JobOrchestrator
from genstudio.jobs.store import InMemoryJobStore, JobStore, SupabaseJobStore
from genstudio.providers.base import ProviderAdapter
from genstudio.providers.replicate import ReplicateProvider
from genstudio.providers.simulated import SimulatedProvider

configure_logging(log_level=settings.log_level, json_output=settings.log_json)


def build_store() -> JobStore:
    if settings.job_store == "memory":
        return InMemoryJobStore()
    if settings.job_store == "supabase":
        return SupabaseJobStore.from_settings(settings)
    raise ValueError(f"Unknown JOB_STORE '{settings.job_store}'")


def build_provider() -> ProviderAdapter:
    if settings.video_provider == "simulated":
        return SimulatedProvider()
    if settings.video_provider == "replicate":
        return ReplicateProvider(
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version,
            base_url=settings.replicate_api_url,
            timeout_s=settings.provider_request_timeout_seconds,
        )
    raise ValueError(f"Unknown VIDEO_PROVIDER '{settings.video_provider}'")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    print(f"Starting GenStudio video job service on port {settings.port}")
    print(f"Job store: {settings.job_store}")
    print(f"Video provider: {settings.video_provider}")
    print(
        f"Polling every {settings.poll_interval_seconds}s, "
        f"timeout {settings.job_timeout_seconds}s"
    )

    store = build_store()
    provider = build_provider()

    runner = InProcessRunner()
    await runner.start()
    print("Background runner started")

    orchestrator = JobOrchestrator(
        store=store,
        provider=provider,
        runner=runner,
        poll_interval_s=settings.poll_interval_seconds,
        timeout_s=settings.job_timeout_seconds,
        dispatch_timeout_s=settings.provider_request_timeout_seconds,
    )

    # Wire orchestrator and runner into API endpoints
    video_api.set_orchestrator(orchestrator)
    health_api.set_dispatcher(runner)

    yield

    # Shutdown
    print(f"Shutting down GenStudio video job service ({runner.active_count()} active job(s))")
    await runner.stop()
    await provider.close()
    video_api.set_orchestrator(None)
    health_api.set_dispatcher(None)


app = FastAPI(
    title="GenStudio Video Jobs",
    description="Asynchronous video generation jobs for the GenStudio app builder",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
app.include_router(generate_video_compat)  # /functions/v1/generate-video compat layer
