"""
Status API routes - Health of Conflux dependencies.

Public endpoint (no auth) for status page aggregation.
Rate limited to prevent abuse.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import text
from structlog import get_logger

from app.api.dependencies import get_provider_gateway
from app.config import settings
from app.db.session import get_write_db
from app.services.provider_gateway import ProviderGateway

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

CHECK_TIMEOUT = 5.0  # seconds
DEGRADED_LATENCY_THRESHOLD = 1000  # ms
RAZORPAY_API_URL = "https://api.razorpay.com/v1/"

# Rate limiting: cache last result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single dependency."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ModelStatus(BaseModel):
    """Configuration status of one chat model binding."""

    model: str
    configured: bool


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "conflux"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]
    models: list[ModelStatus]


def _latency_status(latency_ms: int, timestamp: str) -> ProviderStatus:
    status = (
        StatusLevel.DEGRADED if latency_ms > DEGRADED_LATENCY_THRESHOLD else StatusLevel.OPERATIONAL
    )
    return ProviderStatus(
        status=status,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if status == StatusLevel.DEGRADED else None,
    )


async def check_postgresql() -> ProviderStatus:
    """Check PostgreSQL connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        async for db in get_write_db():
            await db.execute(text("SELECT 1"))
            return _latency_status(int((time.perf_counter() - start) * 1000), timestamp)
    except Exception as e:
        logger.warning("postgresql_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )

    return ProviderStatus(
        status=StatusLevel.OUTAGE,
        latency_ms=None,
        last_check=timestamp,
        message="Unknown error",
    )


async def check_razorpay() -> ProviderStatus:
    """Check Razorpay credentials are set and the API is reachable."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    if not settings.razorpay_configured:
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=None,
            last_check=timestamp,
            message="Not configured - purchases disabled",
        )

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.get(RAZORPAY_API_URL)
            latency_ms = int((time.perf_counter() - start) * 1000)

            # Unauthenticated requests are rejected, which proves reachability
            if response.status_code < 500:
                return _latency_status(latency_ms, timestamp)

            return ProviderStatus(
                status=StatusLevel.DEGRADED,
                latency_ms=latency_ms,
                last_check=timestamp,
                message=f"Unexpected status: {response.status_code}",
            )
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except httpx.HTTPError as e:
        logger.warning("razorpay_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status(
    gateway: ProviderGateway = Depends(get_provider_gateway),
) -> ServiceStatusResponse:
    """
    Get Conflux service status.

    Checks the database and payment gateway, and reports which chat models
    have upstream credentials. Rate limited via 10-second cache.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    postgresql_status, razorpay_status = await asyncio.gather(
        check_postgresql(), check_razorpay()
    )
    providers = {
        "postgresql": postgresql_status,
        "razorpay": razorpay_status,
    }

    response = ServiceStatusResponse(
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
        models=[
            ModelStatus(model=model, configured=gateway.is_configured(model))
            for model in gateway.models
        ],
    )

    _status_cache[cache_key] = (now, response)
    return response
