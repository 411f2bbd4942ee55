"""Health check endpoint.

Verifies connectivity to the ledger store and Redis, returns structured status.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chainflow_escrow.api.deps import get_marketplace
from chainflow_escrow.infrastructure.redis_client import get_redis, is_redis_available
from chainflow_escrow.logging_config import get_logger
from chainflow_escrow.schemas.api import HealthResponse
from chainflow_escrow.services.marketplace_service import MarketplaceService

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(
    svc: MarketplaceService = Depends(get_marketplace),
) -> HealthResponse:
    """Check the store backend and, when configured, Redis."""
    store_status = "unknown"
    redis_status = "disabled"

    try:
        await svc.store.ping()
        store_status = f"healthy ({svc.store.backend})"
    except Exception as exc:
        store_status = f"unhealthy: {exc}"
        logger.error("health.store_check_failed", error=str(exc))

    # Redis only guards idempotency keys; the ledger runs without it.
    if is_redis_available():
        try:
            await get_redis().ping()
            redis_status = "healthy"
        except Exception as exc:
            redis_status = f"unhealthy: {exc}"
            logger.error("health.redis_check_failed", error=str(exc))

    overall = "ok" if store_status.startswith("healthy") else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        store=store_status,
        redis=redis_status,
    )
