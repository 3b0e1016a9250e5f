"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""

    # Job persistence
    job_store: str = "supabase"  # "supabase" or "memory"

    # Video provider
    video_provider: str = "simulated"  # "simulated" or "replicate"
    provider_request_timeout_seconds: float = 30.0

    # Replicate (only when video_provider=replicate)
    replicate_api_url: str = "https://api.replicate.com/v1"
    replicate_api_token: Optional[str] = None
    replicate_model_version: Optional[str] = None

    # Job processing
    poll_interval_seconds: float = 3.0
    job_timeout_seconds: float = 300.0

    # Report other users' jobs as 404 instead of 403
    hide_foreign_jobs: bool = True

    # Server
    port: int = 8001
    log_level: str = "info"
    log_json: bool = False
    cors_allowed_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
