"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from prodai_engine.config import settings
from prodai_engine.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, bool] | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Basic health check endpoint that verifies the API is running.",
)
async def health_check() -> HealthResponse:
    """Basic health check - is the API up?

    Reports which external integrations are configured.
    """
    from prodai_engine import __version__

    components = {
        "image_provider": settings.image_provider == "stub" or bool(settings.gemini_api_key),
        "veo": bool(settings.google_ai_api_key),
        "ltx": bool(settings.ltx_api_key),
        "storage": settings.storage_backend == "local" or bool(settings.supabase_service_key),
        "worker_secret": bool(settings.cron_secret),
    }

    return HealthResponse(status="healthy", version=__version__, components=components)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Verifies the database is reachable.",
)
async def readiness_check() -> ReadinessResponse:
    """Readiness check including the database."""
    from sqlalchemy.exc import SQLAlchemyError

    from prodai_engine.db.session import init_db

    database_ok = False
    try:
        init_db()
        database_ok = True
    except SQLAlchemyError as e:
        logger.error("database_health_check_failed", error=str(e))

    return ReadinessResponse(ready=database_ok, database=database_ok)


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Simple liveness probe for Kubernetes.",
)
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe - is the process alive?"""
    return {"status": "alive"}
