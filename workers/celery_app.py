# =============================================================================
# workers/celery_app.py - Celery Application Configuration
# =============================================================================
# Creates the Celery app used by the API (to queue maintenance jobs and read
# their state) and by the worker/beat processes.
#
# Usage:
#   # Worker and scheduler in one process (small deployments)
#   celery -A workers.celery_app worker --beat -Q default,maintenance --loglevel=info
#
#   # Scheduler on its own
#   celery -A workers.celery_app beat --loglevel=info
# =============================================================================

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun

from app.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_celery_app() -> Celery:
    """Build the Celery app from REDIS_URL and CeleryConfig."""
    app = Celery(
        "viewbait_worker",
        broker=settings.REDIS_URL,
        backend=settings.REDIS_URL,
        include=["workers.tasks"],
    )
    app.config_from_object("workers.config:CeleryConfig")

    # Credentials stay out of the log line
    logger.debug(f"Celery app created with broker: {settings.REDIS_URL.split('@')[-1]}")
    return app


celery_app = create_celery_app()


# =============================================================================
# Task Lifecycle Logging
# =============================================================================

@task_prerun.connect
def log_task_start(sender=None, task_id=None, task=None, kwargs=None, **extra):
    logger.info(f"Task started: {task.name} [{task_id}] kwargs={kwargs or {}}")


@task_postrun.connect
def log_task_done(sender=None, task_id=None, task=None, state=None, **extra):
    logger.info(f"Task finished: {task.name} [{task_id}] state={state}")


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, **extra):
    logger.error(f"Task failed: {sender.name} [{task_id}]: {exception}")


if __name__ == "__main__":
    celery_app.start()
