# =============================================================================
# app/routers/notifications.py - Internal Notification Endpoint
# =============================================================================
# Lets other trusted services create notifications for a user.
# Authenticated with the shared x-internal-secret header, not a session.
# =============================================================================

import hmac
import logging

from fastapi import APIRouter, Header, status

from app.config import settings
from app.exceptions import ConfigurationError, UnauthorizedError
from core.models.notification import NotificationCreate
from core.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_internal_secret(provided: str | None) -> None:
    """
    Constant-time check of the internal API secret.

    Raises:
        ConfigurationError: If INTERNAL_API_SECRET is not set
        UnauthorizedError: If the header is missing or wrong
    """
    if not settings.INTERNAL_API_SECRET:
        logger.error("INTERNAL_API_SECRET not configured")
        raise ConfigurationError("INTERNAL_API_SECRET")

    if not provided or not hmac.compare_digest(provided.encode(), settings.INTERNAL_API_SECRET.encode()):
        logger.warning("Rejected internal request with invalid secret")
        raise UnauthorizedError("Invalid internal secret")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification: NotificationCreate,
    x_internal_secret: str | None = Header(default=None, alias="x-internal-secret"),
):
    """Create a notification (server-to-server only)."""
    verify_internal_secret(x_internal_secret)
    return {"notification": NotificationService.create_notification(notification)}
