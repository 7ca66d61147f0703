# =============================================================================
# core/services/account_service.py - Account Overview
# =============================================================================
# Builds the account page summary from several independent reads.
#
# The reads run concurrently. A failing read does not fail the overview:
# its field is left empty and its name is reported under "errors".
# =============================================================================

import asyncio
import logging
from typing import Any, Callable
from uuid import UUID

from lib.supabase_client import SupabaseClient
from lib.utils import log_context, normalize_uuid
from core.services.experiment_service import ExperimentService
from core.services.subscription_service import SubscriptionService
from core.services.thumbnail_service import ThumbnailService
from core.services.youtube_oauth_service import YouTubeOAuthService
from app.exceptions import DatabaseError

logger = logging.getLogger(__name__)


def count_unread_notifications(user_id: str) -> int:
    client = SupabaseClient.get_client()
    try:
        response = (
            client.table("notifications")
            .select("id", count="exact")
            .eq("user_id", user_id)
            .eq("is_read", False)
            .eq("is_archived", False)
            .limit(1)
            .execute()
        )
    except Exception as e:
        raise DatabaseError("count notifications", str(e))
    return response.count or 0


class AccountService:
    """Service for the account overview."""

    @staticmethod
    async def get_overview(user_id: UUID | str) -> dict[str, Any]:
        """
        Subscription, usage counts, YouTube status and unread notifications.

        Returns:
            {
                "subscription": {...} | None,
                "thumbnail_count": int | None,
                "experiment_count": int | None,
                "youtube": {...} | None,
                "unread_notifications": int | None,
                "errors": {"<field>": "<message>"}
            }
        """
        user_id_str = normalize_uuid(user_id)

        branches: dict[str, Callable[[], Any]] = {
            "subscription": lambda: SubscriptionService.get_summary(user_id_str).model_dump(mode="json"),
            "thumbnail_count": lambda: ThumbnailService.count_thumbnails(user_id_str),
            "experiment_count": lambda: ExperimentService.count_experiments(user_id_str),
            "youtube": lambda: YouTubeOAuthService.get_status(user_id_str).model_dump(mode="json"),
            "unread_notifications": lambda: count_unread_notifications(user_id_str),
        }

        outcomes = await asyncio.gather(
            *(asyncio.to_thread(fetch) for fetch in branches.values()),
            return_exceptions=True,
        )

        overview: dict[str, Any] = {}
        errors: dict[str, str] = {}
        for field, outcome in zip(branches, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Account overview branch failed {log_context(user_id=user_id_str, branch=field)}: {outcome}")
                overview[field] = None
                errors[field] = f"Failed to load {field.replace('_', ' ')}"
            else:
                overview[field] = outcome

        overview["errors"] = errors
        return overview
