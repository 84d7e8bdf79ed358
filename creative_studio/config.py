"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""

    # Backends
    job_store_backend: str = "supabase"  # "supabase" or "memory"
    storage_backend: str = "supabase"  # "supabase" or "local"
    storage_bucket: str = "generated-images"
    local_storage_dir: str = "/tmp/creative_studio_storage"
    signed_url_ttl_seconds: int = 3600

    # Public address of this service, used to build webhook callback URLs
    public_base_url: str = "http://localhost:8000"
    api_port: int = 8000

    # Lipsync (fal.ai)
    fal_key: Optional[str] = None
    fal_lipsync_model: str = "fal-ai/sync-lipsync"
    lipsync_reconcile_mode: str = "webhook"  # "webhook" or "poll"
    webhook_secret: Optional[str] = None

    # Polling reconciler
    poll_interval_seconds: float = 10.0
    poll_max_attempts: int = 60

    # Uploads
    max_upload_bytes: int = 500 * 1024 * 1024
    max_inspiration_images: int = 10

    # Image generation (OpenAI)
    openai_api_key: Optional[str] = None
    style_model: str = "gpt-image-1"
    template_model: str = "dall-e-3"
    default_image_size: str = "1024x1024"

    # Style job worker
    worker_sweep_seconds: float = 30.0

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
