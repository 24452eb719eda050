"""Health check endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

from chambers import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe: the voice bridge needs an upstream credential."""
    if not request.app.state.settings.realtime_available:
        return ORJSONResponse(
            status_code=503,
            content={"status": "not ready", "reason": "OpenAI not configured"},
        )
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Kubernetes liveness probe."""
    return {"status": "alive"}
