"""
Health check endpoint with database and review-queue checks.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_database
from src.api.models import ComponentHealth, HealthResponse
from src.config.settings import get_settings
from src.storage.database import Database
from src.storage.repository import PostRepository

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the health of the service and its dependencies.",
)
async def health_check(db: Database = Depends(get_database)) -> HealthResponse:
    """
    Check service health.

    Status logic:
    - unhealthy: database is down
    - degraded: no ingest token configured (automated ingest rejects every batch)
    - healthy: all components operational
    """
    settings = get_settings()

    components: dict[str, ComponentHealth] = {}
    db_health = await _check_database(db)
    components["database"] = db_health

    review_tiers: dict[str, int] = {}
    if db_health.status == "healthy":
        try:
            review_tiers = await PostRepository(db).tier_counts()
        except Exception as e:
            logger.warning("Failed to count review tiers", error=str(e))

    if db_health.status == "unhealthy":
        status = "unhealthy"
    elif not settings.ingest_token_configured:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        components=components,
        review_tiers=review_tiers,
        ingest_token_configured=settings.ingest_token_configured,
        version="0.1.0",
    )
