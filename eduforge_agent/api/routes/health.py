"""
Health Router

Liveness and readiness endpoints. Readiness pings the Redis client that
backs the conversation and pending action stores.
"""

import logging
from typing import Any

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from eduforge_agent import __version__

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    status: str
    checks: dict[str, bool]


class HealthService:
    """
    Dependency checks for the readiness probe.

    Args:
        redis_client: The application's Redis client, or None when not yet
            initialized.
    """

    def __init__(self, redis_client: Any = None) -> None:
        self._redis = redis_client

    async def check_redis(self) -> bool:
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False


router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="healthy", version=__version__)


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request, response: Response) -> ReadinessResponse:
    """
    Readiness check endpoint.

    Returns 503 when Redis is unreachable.
    """
    service = HealthService(getattr(request.app.state, "redis", None))
    checks = {"redis": await service.check_redis()}
    all_healthy = all(checks.values())
    if not all_healthy:
        response.status_code = 503
    return ReadinessResponse(status="ready" if all_healthy else "not_ready", checks=checks)


@router.get("/", tags=["Info"])
async def root(request: Request) -> dict[str, Any]:
    """Root endpoint returning basic service information."""
    settings = request.app.state.settings
    return {
        "service": settings.service_name,
        "version": __version__,
        "docs": "/docs" if settings.environment != "production" else "disabled",
    }
