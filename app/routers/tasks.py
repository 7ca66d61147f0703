# =============================================================================
# app/routers/tasks.py - Task Status Endpoints
# =============================================================================
# Reports the state of background (Celery) tasks such as the free-tier
# retention cleanup.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel

from app.auth import AuthUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


class TaskStatusResponse(BaseModel):
    """Response model for task status."""
    task_id: str
    status: str
    message: str | None = None
    result: dict | None = None
    error: str | None = None


STATUS_MESSAGES = {
    "PENDING": "Waiting in queue...",
    "STARTED": "Starting...",
    "RETRY": "Retrying...",
    "SUCCESS": "Complete",
    "FAILURE": "Failed",
}


@router.get("/{task_id}", response_model=TaskStatusResponse)
async def get_task_status(
    task_id: Annotated[str, Path(description="Celery task ID")],
    user: AuthUser = Depends(get_current_user),
):
    """
    Get the status of a background task.

    - PENDING: Task is waiting in queue (or unknown)
    - STARTED: Task has been picked up by a worker
    - SUCCESS: Task completed; includes `result`
    - FAILURE: Task failed; includes `error`
    """
    from workers.celery_app import celery_app

    result = celery_app.AsyncResult(task_id)

    response = TaskStatusResponse(
        task_id=task_id,
        status=result.status,
        message=STATUS_MESSAGES.get(result.status),
    )

    if result.status == "SUCCESS":
        response.result = result.result if isinstance(result.result, dict) else {"value": result.result}
    elif result.status == "FAILURE":
        logger.warning(f"Task {task_id} failed: {result.result}")
        response.error = "Task failed"

    return response
