# =============================================================================
# app/routers/cron.py - Scheduled Job Triggers
# =============================================================================
# Lets an external scheduler trigger maintenance jobs. Celery beat runs the
# same jobs on its own schedule.
# Authenticated with the shared x-cron-secret header.
# =============================================================================

import hmac
import logging

from fastapi import APIRouter, Header, status
from pydantic import BaseModel

from app.config import settings
from app.exceptions import ConfigurationError, UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter()


class TaskSubmitResponse(BaseModel):
    """Response model for task submission."""
    task_id: str
    status: str
    message: str


def _enqueue_cleanup() -> str:
    from workers.tasks import cleanup_free_tier_thumbnails

    result = cleanup_free_tier_thumbnails.delay()
    return result.id


@router.post(
    "/cleanup-free-tier-thumbnails",
    response_model=TaskSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_free_tier_cleanup(
    x_cron_secret: str | None = Header(default=None, alias="x-cron-secret"),
):
    """
    Queue deletion of free-tier thumbnails past the retention period.

    Poll GET /api/tasks/{task_id} for the outcome.
    """
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET not configured")
        raise ConfigurationError("CRON_SECRET")

    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.encode(), settings.CRON_SECRET.encode()):
        logger.warning("Rejected cron request with invalid secret")
        raise UnauthorizedError("Invalid cron secret")

    task_id = _enqueue_cleanup()
    logger.info(f"Queued free-tier cleanup task {task_id}")

    return TaskSubmitResponse(
        task_id=task_id,
        status="PENDING",
        message="Cleanup queued. Use GET /api/tasks/{task_id} to check status.",
    )
