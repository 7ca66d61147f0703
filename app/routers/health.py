# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
# =============================================================================

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from lib.supabase_client import SupabaseClient
from lib.utils import utc_now_iso
from app.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    environment: str
    version: str


class IntegrationsResponse(BaseModel):
    """Which optional integrations have credentials configured."""
    stripe: bool
    youtube: bool
    internal_api: bool
    cron: bool


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str
    database: str
    integrations: IntegrationsResponse
    timestamp: str


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns basic health status for load balancers and monitoring.
    """
    return HealthResponse(
        status="healthy",
        timestamp=utc_now_iso(),
        environment=settings.ENVIRONMENT,
        version=API_VERSION,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check():
    """
    Readiness check endpoint.

    Checks database connectivity and reports configured integrations.
    """
    try:
        client = SupabaseClient.get_client()
        client.table("subscription_tiers").select("tier_name").limit(1).execute()
        database = "healthy"
    except Exception as e:
        logger.warning(f"Readiness check: database unreachable: {e}")
        database = "unhealthy"

    integrations = IntegrationsResponse(
        stripe=bool(settings.STRIPE_SECRET_KEY and settings.STRIPE_WEBHOOK_SECRET),
        youtube=bool(settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET),
        internal_api=bool(settings.INTERNAL_API_SECRET),
        cron=bool(settings.CRON_SECRET),
    )

    return ReadinessResponse(
        status="ready" if database == "healthy" else "degraded",
        database=database,
        integrations=integrations,
        timestamp=utc_now_iso(),
    )
