# =============================================================================
# core/models/notification.py - Notification Schemas
# =============================================================================
# Notifications are created server-side (billing events, milestones) or by
# other trusted services through the internal endpoint.
# =============================================================================

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class NotificationType(str, Enum):
    SYSTEM = "system"
    BILLING = "billing"
    REWARD = "reward"
    SOCIAL = "social"
    INFO = "info"
    WARNING = "warning"


class NotificationSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationCreate(BaseModel):
    """
    Payload for creating a notification.

    Example:
        {
            "user_id": "550e8400-...",
            "type": "billing",
            "title": "Subscription active",
            "body": "Your Pro plan is now active."
        }
    """
    user_id: str = Field(..., min_length=1)
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=2000)
    severity: NotificationSeverity = NotificationSeverity.INFO
    icon: str | None = None
    action_url: str | None = None
    action_label: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title", "body")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value
