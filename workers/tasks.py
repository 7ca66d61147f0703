# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Tasks:
# - cleanup_free_tier_thumbnails: Delete free-tier thumbnails past retention
# =============================================================================

import logging
from typing import Any

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="workers.tasks.cleanup_free_tier_thumbnails")
def cleanup_free_tier_thumbnails(self, retention_days: int | None = None) -> dict[str, Any]:
    """
    Delete thumbnails older than the free-tier retention period.

    Runs daily from celery beat and on demand from POST /api/cron/...

    Args:
        retention_days: Override for FREE_TIER_RETENTION_DAYS

    Returns:
        Dict with:
        - success: bool
        - users: Free-tier users checked
        - thumbnails_deleted: Rows removed
        - files_deleted: Storage objects removed
    """
    from app.config import settings
    from core.services.thumbnail_service import ThumbnailService

    days = retention_days or settings.FREE_TIER_RETENTION_DAYS
    logger.info(f"Running free-tier cleanup (retention {days} days)")

    stats = ThumbnailService.cleanup_free_tier_thumbnails(days)
    return {"success": True, "retention_days": days, **stats}
