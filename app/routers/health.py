# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
# =============================================================================

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from app.config import settings

router = APIRouter()

SERVICE_NAME = "portrait-studio"


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    service: str
    environment: str
    replicate_configured: bool


class ChecksResponse(BaseModel):
    """Individual service checks."""
    redis: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str
    checks: ChecksResponse
    timestamp: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Reports "error" when no provider token is configured.
    """
    configured = bool(settings.REPLICATE_API_TOKEN)
    return HealthResponse(
        status="ok" if configured else "error",
        timestamp=_now(),
        service=SERVICE_NAME,
        environment=settings.ENVIRONMENT,
        replicate_configured=configured,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check():
    """
    Readiness check endpoint.

    Checks Redis, which carries both the task queue and realtime updates.
    """
    from app.websocket.broadcast import get_redis_client

    checks = ChecksResponse(redis="unknown")

    try:
        get_redis_client().ping()
        checks.redis = "healthy"
    except Exception as e:
        checks.redis = f"unhealthy: {str(e)[:50]}"

    return ReadinessResponse(
        status="ready" if checks.redis == "healthy" else "degraded",
        checks=checks,
        timestamp=_now(),
    )
