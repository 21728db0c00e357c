# watchtower/interfaces/api/probes.py
"""FastAPI health and readiness endpoints backed by a Watchtower.

Mount on the service's app so orchestrators can probe it:

    app = FastAPI()
    app.include_router(create_probe_router(watchtower))
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status

from watchtower.core.lifecycle import Watchtower

logger = logging.getLogger(__name__)


def create_probe_router(watchtower: Watchtower, prefix: str = "") -> APIRouter:
    """Build a router exposing ``GET /health`` and ``GET /ready``.

    Both answer 200 when the check passes and 503 otherwise.

    Args:
        watchtower: Controller to query.
        prefix: Optional path prefix, e.g. ``"/_probe"``.

    Returns:
        APIRouter to include in an application.
    """
    router = APIRouter(prefix=prefix, tags=["probes"])

    @router.get("/health")
    async def health(response: Response) -> dict[str, Any]:
        """Liveness/health probe."""
        healthy = await watchtower.is_healthy()
        if not healthy:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "healthy" if healthy else "unhealthy",
            "state": watchtower.state.name.lower(),
        }

    @router.get("/ready")
    async def ready(response: Response) -> dict[str, Any]:
        """Readiness probe."""
        is_ready = watchtower.is_ready()
        if not is_ready:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "ready": is_ready,
            "shutting_down": watchtower.is_shutting_down(),
        }

    return router
