# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and task definitions for
# scheduled maintenance.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions (free-tier retention cleanup)
# - config.py: Worker-specific settings and beat schedule
#
# Usage:
#   # Start worker with the embedded beat scheduler
#   celery -A workers.celery_app worker --beat --loglevel=info
#
#   # Submit task (from API)
#   from workers.tasks import cleanup_free_tier_thumbnails
#   result = cleanup_free_tier_thumbnails.delay()
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
