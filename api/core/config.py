"""
Configuration settings for the FastAPI application
"""
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Jewelry Studio API"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # OpenAI (design consultant + reference image analysis)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_vision_model: str = "gpt-4o"
    openai_max_tokens: int = 1000
    openai_vision_max_tokens: int = 500
    openai_temperature: float = 0.7
    openai_timeout: float = 60.0

    # Google generation (Imagen for images, Veo for video)
    google_ai_api_key: str = ""
    google_use_vertexai: bool = False
    google_cloud_project: str = ""
    google_cloud_location: str = "us-central1"
    imagen_model: str = "imagen-3.0-generate-002"
    veo_models: List[str] = [
        "veo-3.0-fast-generate-001",
        "veo-3.0-generate-001",
        "veo-2.0-generate-001",
    ]
    image_timeout_seconds: float = 60.0
    video_timeout_seconds: float = 180.0
    video_poll_interval_seconds: float = 5.0

    # Replicate (Stable Diffusion fallback)
    replicate_api_token: str = ""
    replicate_model_stable_diffusion: str = (
        "stability-ai/stable-diffusion:27b93a2413e7f36cd83da926f3656280b2931564ff050bf9575f1fdf9bcd7478"
    )
    replicate_image_size: int = 768
    replicate_inference_steps: int = 20
    replicate_guidance_scale: float = 7.5

    # Generation policy
    image_provider_order: List[str] = ["imagen", "stable_diffusion"]
    strict_generation_errors: bool = False  # Surface AllProvidersExhausted as 500 instead of imageUrl=null

    # Video queue (quota-constrained provider)
    video_min_request_interval_ms: int = 600  # 600ms = 100 requests/minute
    video_max_requests_per_window: int = 100
    video_window_ms: int = 60_000
    video_queue_timeout_ms: int = 300_000  # 5 minutes
    video_max_attempts: int = 3
    video_quota_backoff_base_ms: int = 10_000  # 10s, 20s, 40s
    video_retry_delay_ms: int = 2_000
    video_cooldown_ms: int = 100

    # Artifact store
    artifact_store_backend: str = "local"  # "local" or "s3"
    artifact_local_path: str = "../data/artifacts"
    artifact_public_base_url: str = "http://localhost:8000/static/artifacts"
    aws_s3_bucket: str = ""
    aws_s3_region: str = ""
    aws_s3_cdn_base_url: str = ""
    aws_s3_folder_prefix: str = ""

    # Reference image uploads
    max_upload_size: int = 10 * 1024 * 1024  # 10MB
    max_reference_dimension: int = 1024
    reference_jpeg_quality: int = 85

    # Conversation sharing
    share_base_url: str = "http://localhost:3000/home"
    share_ttl_days: int = 30
    share_prefix: str = "shared-conversations"

    # Analytics counters
    analytics_key: str = "analytics/global-stats.json"
    analytics_retention_days: int = 90
    analytics_seed_images_generated: int = 0

    # CRM (HubSpot)
    hubspot_access_token: str = ""
    hubspot_base_url: str = "https://api.hubapi.com"
    hubspot_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env


# Global settings instance
settings = Settings()
