"""
StudyCare Backend — Health & Metrics Routes
=============================================

What:  Liveness/readiness probe and the in-process metrics snapshot.
Who:   Load balancers, Docker health checks, dashboards. No auth, and
       exempt from rate limiting.

Health Check Philosophy:
    - healthy:   database reachable and AI provider available
    - degraded:  database reachable, AI provider unavailable or circuit open
                 (non-AI features keep working)
    - unhealthy: database unreachable (HTTP 503, stop routing traffic)
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from studycare import __version__
from studycare.database import get_db_session
from studycare.models.common import utcnow
from studycare.schemas.common import ApiResponse
from studycare.schemas.health import HealthResponse, MetricsSnapshot
from studycare.services.circuit_breaker import CircuitBreaker
from studycare.services.gemini_service import gemini_service
from studycare.services.metrics import MetricsCollector, get_metrics

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()

STATUS_MESSAGES = {
    "healthy": "StudyCare API is running",
    "degraded": "StudyCare API is running with AI features unavailable",
    "unhealthy": "StudyCare API cannot reach its database",
}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Checks database connectivity and AI provider availability.",
)
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> HealthResponse:
    """
    Check details:
        Database: SELECT 1 on a pooled connection
        AI:       circuit breaker state first, then a model listing call
    """
    db_status = "connected"
    ai_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check AI provider ─────────────────────────────────────────────────
    try:
        if gemini_service.circuit_breaker.state == CircuitBreaker.OPEN:
            ai_status = "circuit_open"
        elif not await gemini_service.health_check():
            ai_status = "unavailable"
    except Exception as e:
        ai_status = "unavailable"
        logger.warning("Health check: AI provider unreachable: %s", str(e))

    if ai_status != "available" and overall == "healthy":
        overall = "degraded"
    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        message=STATUS_MESSAGES[overall],
        version=__version__,
        database=db_status,
        ai=ai_status,
        uptime_seconds=round(time.time() - _start_time, 2),
        timestamp=utcnow(),
    )


@router.get("/metrics", response_model=ApiResponse[MetricsSnapshot], summary="Request metrics snapshot")
async def get_metrics_snapshot(
    metrics: MetricsCollector = Depends(get_metrics),
) -> ApiResponse[MetricsSnapshot]:
    return ApiResponse(data=MetricsSnapshot.model_validate(metrics.snapshot()))
