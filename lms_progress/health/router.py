"""Health check endpoints.

Readiness reports which pieces of the progress API the lifespan has wired up
and answers 503 until all of them are available.
"""

from typing import Any

from fastapi import APIRouter, Request, Response, status


router = APIRouter(prefix="/health", tags=["health"])

REQUIRED_STATE = ("content_store", "progress_service", "lesson_completion_service")


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, Any]:
    """Readiness probe for the content store and progress services."""
    settings = request.app.state.settings
    components = {
        name: getattr(request.app.state, name, None) is not None
        for name in REQUIRED_STATE
    }
    ready = all(components.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if ready else "starting",
        "environment": settings.environment,
        "content_store": settings.content_store_backend,
        "components": components,
    }


@router.get("")
async def health(request: Request) -> dict[str, str]:
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
