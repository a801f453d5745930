"""
FastAPI main application for the Jewelry Studio chat widget backend
"""
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

# Add api directory to path for imports
api_dir = os.path.dirname(os.path.abspath(__file__))
if api_dir not in sys.path:
    sys.path.insert(0, api_dir)

from core.config import settings
from core.logging import mask_secret, setup_logging
from middleware.logging_middleware import RequestLoggingMiddleware
from routers import analytics, chat, crm, share
from services.crm_service import hubspot_service
from services.video_queue import get_video_queue

setup_logging()
logger = logging.getLogger(__name__)


def log_credential(name: str, value: str, consequence: str) -> None:
    if value:
        logger.info(f"✅ {name} is set: {mask_secret(value)}")
    else:
        logger.warning(f"❌ {name} is NOT set - {consequence}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    logger.info("=" * 60)
    logger.info("ENVIRONMENT VARIABLES CHECK")
    logger.info("=" * 60)
    log_credential("OPENAI_API_KEY", settings.openai_api_key, "chat will not work!")
    if settings.google_use_vertexai:
        logger.info(f"✅ Using Vertex AI (project={settings.google_cloud_project}, location={settings.google_cloud_location})")
    else:
        log_credential("GOOGLE_AI_API_KEY", settings.google_ai_api_key, "Imagen and Veo generation disabled")
    log_credential("REPLICATE_API_TOKEN", settings.replicate_api_token, "Stable Diffusion fallback disabled")
    log_credential("HUBSPOT_ACCESS_TOKEN", settings.hubspot_access_token, "CRM sync will fail")
    logger.info(f"Artifact store backend: {settings.artifact_store_backend}")
    logger.info(f"Image provider order: {', '.join(settings.image_provider_order)}")
    logger.info("=" * 60)

    logger.info("Application started")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await get_video_queue().close()
    await hubspot_service.close()
    logger.info("Application stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Jewelry design chat, generation, sharing and analytics API",
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers"""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.version,
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information and video queue status"""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs" if settings.environment == "development" else None,
        "endpoints": {
            "chat": "/api/chat",
            "share": "/api/share",
            "analytics": "/api/analytics",
            "crm": "/api/create-hubspot-contact",
        },
        "videoQueue": get_video_queue().get_status(),
    }


# Include routers
app.include_router(chat.router)
app.include_router(share.router)
app.include_router(analytics.router)
app.include_router(crm.router)

# Mount static files for serving locally stored artifacts
if settings.artifact_store_backend == "local":
    artifact_dir = Path(settings.artifact_local_path)
    artifact_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/static/artifacts", StaticFiles(directory=str(artifact_dir)), name="artifacts")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_config=None,  # Use our custom logging
        access_log=False,  # We handle this in middleware
    )
