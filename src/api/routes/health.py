"""
Health Check Routes
===================
Liveness plus resilience statistics (/api/health)
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import HEALTH_LIMIT, get_container, limiter
from src.api.models import HealthResponse
from src.infrastructure.container import Container

router = APIRouter(tags=["Health"])


@router.get("/api/health", response_model=HealthResponse)
@limiter.limit(HEALTH_LIMIT)
async def health_check(request: Request, container: Container = Depends(get_container)):
    """
    Health check

    "degraded" when any dependency circuit is not closed.
    """
    resilience = container.resilience_stats()
    degraded = any(s["circuit_breaker"]["state"] != "closed" for s in resilience.values())
    return HealthResponse(
        status="degraded" if degraded else "healthy",
        timestamp=datetime.now().isoformat(),
        resilience=resilience,
        feature_flags=container.get_feature_flags().snapshot(),
    )
