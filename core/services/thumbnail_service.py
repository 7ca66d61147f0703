# =============================================================================
# core/services/thumbnail_service.py - Thumbnail Gallery Business Logic
# =============================================================================
# Handles thumbnail listing, updates and deletion, plus the free-tier
# retention cleanup run by the worker.
#
# Every query filters on user_id: a thumbnail owned by someone else is
# reported exactly like a missing one.
# =============================================================================

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, utc_now
from core.models.thumbnail import ThumbnailList, ThumbnailOrderBy, ThumbnailUpdate
from core.services.storage_service import StorageService, THUMBNAILS_BUCKET
from app.exceptions import DatabaseError, InvalidRequestError, ResourceNotFoundError, ViewBaitException

logger = logging.getLogger(__name__)

THUMBNAIL_COLUMNS = (
    "id, user_id, title, image_url, style, palette, emotion, aspect_ratio, resolution, "
    "has_watermark, liked, is_public, project_id, share_click_count, created_at"
)

# Batch size for the retention cleanup
CLEANUP_BATCH_SIZE = 500


class ThumbnailService:
    """
    Service for thumbnail gallery operations.

    Provides a clean interface between API routes and database.
    """

    @staticmethod
    def list_thumbnails(
        user_id: UUID | str,
        limit: int = 24,
        offset: int = 0,
        order_by: ThumbnailOrderBy = ThumbnailOrderBy.CREATED_AT,
        ascending: bool = False,
        favorites_only: bool = False,
        project_id: str | None = None,
    ) -> ThumbnailList:
        """
        List the user's thumbnails with fresh signed URLs.

        Args:
            user_id: The owner
            limit: Page size
            offset: Rows to skip
            order_by: Sort column
            ascending: Sort direction
            favorites_only: Only liked thumbnails
            project_id: Only thumbnails in this project

        Returns:
            ThumbnailList with thumbnails, total count and has_more
        """
        client = SupabaseClient.get_client()
        user_id_str = normalize_uuid(user_id)

        query = (
            client.table("thumbnails")
            .select(THUMBNAIL_COLUMNS, count="exact")
            .eq("user_id", user_id_str)
        )
        if favorites_only:
            query = query.eq("liked", True)
        if project_id:
            query = query.eq("project_id", project_id)

        try:
            response = (
                query.order(order_by.value, desc=not ascending)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            raise DatabaseError("fetch thumbnails", str(e))

        thumbnails = StorageService.refresh_thumbnail_urls(response.data or [], user_id_str)
        total = response.count if response.count is not None else len(thumbnails)

        return ThumbnailList(
            thumbnails=thumbnails,
            count=total,
            has_more=offset + len(thumbnails) < total,
        )

    @staticmethod
    def get_thumbnail(thumbnail_id: str, user_id: UUID | str) -> dict[str, Any]:
        """
        Get one of the user's thumbnails.

        Raises:
            ResourceNotFoundError: If it doesn't exist or belongs to someone else
        """
        client = SupabaseClient.get_client()
        user_id_str = normalize_uuid(user_id)

        try:
            thumbnail = SupabaseClient.fetch_first(
                client.table("thumbnails")
                .select(THUMBNAIL_COLUMNS)
                .eq("id", thumbnail_id)
                .eq("user_id", user_id_str)
            )
        except Exception as e:
            raise DatabaseError("fetch thumbnail", str(e))

        if not thumbnail:
            raise ResourceNotFoundError("thumbnail", thumbnail_id)

        StorageService.refresh_thumbnail_urls([thumbnail], user_id_str)
        return thumbnail

    @staticmethod
    def update_thumbnail(
        thumbnail_id: str,
        user_id: UUID | str,
        update: ThumbnailUpdate,
    ) -> dict[str, Any]:
        """
        Update allowed fields on a thumbnail.

        Raises:
            InvalidRequestError: If no fields were provided
            ResourceNotFoundError: If it doesn't exist or belongs to someone else
        """
        changes = update.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidRequestError("No fields to update")

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("thumbnails")
                .update(changes)
                .eq("id", thumbnail_id)
                .eq("user_id", normalize_uuid(user_id))
                .execute()
            )
        except Exception as e:
            raise DatabaseError("update thumbnail", str(e))

        if not response.data:
            raise ResourceNotFoundError("thumbnail", thumbnail_id)

        logger.info(f"Updated thumbnail {thumbnail_id}: {sorted(changes)}")
        return response.data[0]

    @staticmethod
    def delete_thumbnail(thumbnail_id: str, user_id: UUID | str) -> None:
        """
        Delete a thumbnail row and its stored image.

        The storage removal is best effort; a leftover file is only logged.

        Raises:
            ResourceNotFoundError: If it doesn't exist or belongs to someone else
        """
        client = SupabaseClient.get_client()
        user_id_str = normalize_uuid(user_id)

        try:
            response = (
                client.table("thumbnails")
                .delete()
                .eq("id", thumbnail_id)
                .eq("user_id", user_id_str)
                .execute()
            )
        except Exception as e:
            raise DatabaseError("delete thumbnail", str(e))

        if not response.data:
            raise ResourceNotFoundError("thumbnail", thumbnail_id)

        deleted = response.data[0]
        path = StorageService.extract_storage_path(deleted.get("image_url"), THUMBNAILS_BUCKET)
        try:
            StorageService.remove(THUMBNAILS_BUCKET, [path or StorageService.thumbnail_path(user_id_str, thumbnail_id)])
        except ViewBaitException as e:
            logger.warning(f"Thumbnail {thumbnail_id} deleted but file removal failed: {e.details}")

        logger.info(f"Deleted thumbnail {thumbnail_id} for user {user_id_str}")

    @staticmethod
    def count_thumbnails(user_id: UUID | str) -> int:
        """Number of thumbnails the user owns."""
        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("thumbnails")
                .select("id", count="exact")
                .eq("user_id", normalize_uuid(user_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise DatabaseError("count thumbnails", str(e))
        return response.count or 0

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    @staticmethod
    def cleanup_free_tier_thumbnails(retention_days: int) -> dict[str, int]:
        """
        Delete thumbnails older than `retention_days` for users on the free tier.

        Free-tier users are those whose subscription has no product. Files
        are removed from storage before their rows.

        Returns:
            {"users": n, "thumbnails_deleted": n, "files_deleted": n}
        """
        client = SupabaseClient.get_client()
        cutoff = (utc_now() - timedelta(days=retention_days)).isoformat()

        try:
            response = (
                client.table("user_subscriptions")
                .select("user_id")
                .is_("product_id", "null")
                .execute()
            )
        except Exception as e:
            raise DatabaseError("fetch free-tier users", str(e))

        user_ids = [row["user_id"] for row in response.data or []]
        stats = {"users": len(user_ids), "thumbnails_deleted": 0, "files_deleted": 0}

        for user_id in user_ids:
            try:
                old = (
                    client.table("thumbnails")
                    .select("id, image_url")
                    .eq("user_id", user_id)
                    .lt("created_at", cutoff)
                    .limit(CLEANUP_BATCH_SIZE)
                    .execute()
                )
            except Exception as e:
                logger.error(f"Cleanup: failed to list thumbnails for user {user_id}: {e}")
                continue

            rows = old.data or []
            if not rows:
                continue

            paths = [
                StorageService.extract_storage_path(row.get("image_url"), THUMBNAILS_BUCKET)
                or StorageService.thumbnail_path(user_id, row["id"])
                for row in rows
            ]
            try:
                StorageService.remove(THUMBNAILS_BUCKET, paths)
                stats["files_deleted"] += len(paths)
            except ViewBaitException as e:
                logger.error(f"Cleanup: failed to remove files for user {user_id}: {e.details}")
                continue

            try:
                client.table("thumbnails").delete().in_("id", [row["id"] for row in rows]).execute()
                stats["thumbnails_deleted"] += len(rows)
            except Exception as e:
                logger.error(f"Cleanup: failed to delete rows for user {user_id}: {e}")

        logger.info(f"Free-tier cleanup finished: {stats}")
        return stats
