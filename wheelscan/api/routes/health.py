"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, status

from wheelscan.core.config import settings
from wheelscan.core.exceptions import StoreUnavailableError
from wheelscan.core.logging import get_logger
from wheelscan.repositories import scan_results_orm as scan_results_repo
from wheelscan.schemas.common import HealthResponse
from wheelscan.services.data_providers import (
    get_market_data_provider,
    get_options_data_provider,
)


router = APIRouter(prefix="/health")

logger = get_logger("health")


async def db_healthcheck() -> bool:
    """Check the result store is reachable."""
    try:
        return await scan_results_repo.ping()
    except StoreUnavailableError as e:
        logger.warning(f"Database healthcheck failed: {e.message}")
        return False


async def provider_healthcheck(provider) -> bool:
    try:
        return await provider.health_check()
    except Exception as e:
        logger.warning(f"Provider {provider.name} healthcheck failed: {e}")
        return False


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check() -> HealthResponse:
    """
    Perform health check on API and dependencies.

    The database is required; an unhealthy data provider only degrades
    the service since cached results stay readable.
    """
    market_data = get_market_data_provider()
    options_data = get_options_data_provider()

    checks = {
        "database": await db_healthcheck(),
        "market_data": await provider_healthcheck(market_data),
        "options_data": await provider_healthcheck(options_data),
    }

    if all(checks.values()):
        overall = "healthy"
    elif checks["database"]:
        overall = "degraded"
    else:
        overall = "unhealthy"

    return HealthResponse(
        status=overall,
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the API is ready to accept traffic.",
)
async def readiness_check() -> dict:
    """Returns 200 once the database answers."""
    if not await db_healthcheck():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        )
    return {"status": "ready"}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the API process is alive.",
)
async def liveness_check() -> dict:
    return {"status": "alive"}
