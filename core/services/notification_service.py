# =============================================================================
# core/services/notification_service.py - Notification Creation
# =============================================================================
# Server-side notification creation. Used by the billing webhook, the
# generation milestones and the internal notifications endpoint.
# =============================================================================

import logging
from typing import Any

from lib.supabase_client import SupabaseClient
from core.models.notification import NotificationCreate
from app.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for creating user notifications."""

    @staticmethod
    def create_notification(notification: NotificationCreate) -> dict[str, Any]:
        """
        Insert a notification row.

        Returns:
            The created notification

        Raises:
            DatabaseError: If the insert fails
        """
        client = SupabaseClient.get_client()

        data = {
            "user_id": notification.user_id,
            "type": notification.type.value,
            "title": notification.title,
            "body": notification.body,
            "severity": notification.severity.value,
            "icon": notification.icon,
            "action_url": notification.action_url,
            "action_label": notification.action_label,
            "metadata": notification.metadata,
            "is_read": False,
            "is_archived": False,
        }

        try:
            response = client.table("notifications").insert(data).execute()
        except Exception as e:
            logger.error(f"Failed to create notification for user {notification.user_id}: {e}")
            raise DatabaseError("create notification", str(e))

        if not response.data:
            raise DatabaseError("create notification", "insert returned no data")

        created = response.data[0]
        logger.info(f"Created {notification.type.value} notification {created.get('id')} for user {notification.user_id}")
        return created

    @staticmethod
    def create_notification_if_new(notification: NotificationCreate, milestone: str) -> dict[str, Any] | None:
        """
        Create a milestone notification once per user.

        The milestone key is stored in metadata; if the user already has a
        notification with the same milestone nothing is created.

        Returns:
            The created notification, or None if it already existed
        """
        client = SupabaseClient.get_client()

        try:
            existing = SupabaseClient.fetch_first(
                client.table("notifications")
                .select("id")
                .eq("user_id", notification.user_id)
                .eq("metadata->>milestone", milestone)
            )
        except Exception as e:
            raise DatabaseError("check existing notification", str(e))

        if existing:
            logger.debug(f"Milestone {milestone} already notified for user {notification.user_id}")
            return None

        notification.metadata = {**notification.metadata, "milestone": milestone}
        return NotificationService.create_notification(notification)
