# =============================================================================
# core/services/storage_service.py - Supabase Storage Operations
# =============================================================================
# Handles image uploads, removals and signed URLs for the private buckets.
#
# Stored image URLs are long-lived signed URLs. When a URL is within the
# refresh window of its expiry (or its expiry cannot be read) a new one is
# signed for the same storage path.
# =============================================================================

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs, urlparse

from jose import jwt, JWTError

from lib.supabase_client import SupabaseClient
from lib.ttl_cache import TTLCache
from lib.utils import utc_now
from app.config import settings
from app.exceptions import StorageError

logger = logging.getLogger(__name__)

# Storage bucket for generated images
THUMBNAILS_BUCKET = "thumbnails"

# Extensions tried when a thumbnail URL carries no usable storage path
FALLBACK_EXTENSIONS = ("png", "jpg", "jpeg", "webp")

# Refreshed URLs, keyed by (bucket, path), so a gallery page signs each once
signed_url_cache = TTLCache(maxsize=5000, ttl=3600, name="signed_urls")


class StorageService:
    """
    Service for Supabase Storage operations.

    Handles uploading thumbnails and keeping their signed URLs fresh.
    """

    @staticmethod
    def thumbnail_path(user_id: str, thumbnail_id: str, extension: str = "png") -> str:
        """Canonical storage path of a generated thumbnail."""
        return f"{user_id}/{thumbnail_id}/thumbnail.{extension}"

    @staticmethod
    def upload_image(
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "image/png",
    ) -> str:
        """
        Upload image bytes to storage, replacing any existing object.

        Returns:
            Storage path where the file was uploaded

        Raises:
            StorageError: If upload fails
        """
        client = SupabaseClient.get_client()

        try:
            client.storage.from_(bucket).upload(
                path=path,
                file=content,
                file_options={"content-type": content_type, "upsert": "true"}
            )
            logger.info(f"Uploaded file to storage: {bucket}/{path}")
            return path

        except Exception as e:
            logger.error(f"Failed to upload to storage: {bucket}/{path}: {e}")
            raise StorageError("upload image", str(e))

    @staticmethod
    def create_signed_url(bucket: str, path: str, expires_in: int | None = None) -> str:
        """
        Create a signed URL for a private object.

        Args:
            bucket: Bucket name
            path: Object path inside the bucket
            expires_in: Lifetime in seconds (default: SIGNED_URL_EXPIRY_SECONDS)

        Raises:
            StorageError: If signing fails
        """
        client = SupabaseClient.get_client()
        expires_in = expires_in or settings.SIGNED_URL_EXPIRY_SECONDS

        try:
            result = client.storage.from_(bucket).create_signed_url(path, expires_in)
        except Exception as e:
            raise StorageError("create signed URL", str(e))

        signed_url = (result or {}).get("signedURL") or (result or {}).get("signedUrl")
        if not signed_url:
            raise StorageError("create signed URL", f"no URL returned for {bucket}/{path}")
        return signed_url

    @staticmethod
    def remove(bucket: str, paths: list[str]) -> None:
        """
        Delete objects from storage.

        Raises:
            StorageError: If deletion fails
        """
        if not paths:
            return

        client = SupabaseClient.get_client()
        try:
            client.storage.from_(bucket).remove(paths)
            logger.info(f"Removed {len(paths)} object(s) from {bucket}")
        except Exception as e:
            logger.error(f"Failed to remove objects from {bucket}: {e}")
            raise StorageError("delete file", str(e))

    # -------------------------------------------------------------------------
    # Signed URL Refresh
    # -------------------------------------------------------------------------

    @staticmethod
    def extract_storage_path(url: str | None, bucket: str) -> str | None:
        """
        Extract the object path from a signed storage URL.

        Example:
            ".../storage/v1/object/sign/thumbnails/u1/t1/thumbnail.png?token=..."
            -> "u1/t1/thumbnail.png"
        """
        if not url:
            return None
        match = re.search(rf"/storage/v1/object/sign/{re.escape(bucket)}/([^?]+)", url)
        return match.group(1) if match else None

    @staticmethod
    def get_url_expiry(url: str) -> datetime | None:
        """
        Read the expiry of a signed URL.

        Uses the `expires` query parameter when present, otherwise the `exp`
        claim of the signed `token` parameter. Returns None when neither can
        be read.
        """
        try:
            query = parse_qs(urlparse(url).query)
        except ValueError:
            return None

        expires = query.get("expires", [None])[0]
        if expires:
            try:
                return datetime.fromtimestamp(int(expires), tz=timezone.utc)
            except (ValueError, OverflowError):
                return None

        token = query.get("token", [None])[0]
        if token:
            try:
                claims = jwt.get_unverified_claims(token)
            except JWTError:
                return None
            exp = claims.get("exp")
            if isinstance(exp, (int, float)):
                return datetime.fromtimestamp(exp, tz=timezone.utc)

        return None

    @staticmethod
    def needs_refresh(url: str | None, now: datetime | None = None) -> bool:
        """True if the URL is missing, unreadable, or expires within the refresh window."""
        if not url:
            return True
        expiry = StorageService.get_url_expiry(url)
        if expiry is None:
            return True
        now = now or utc_now()
        return expiry <= now + timedelta(seconds=settings.SIGNED_URL_REFRESH_THRESHOLD_SECONDS)

    @staticmethod
    def refresh_signed_url(
        bucket: str,
        url: str | None,
        fallback_paths: list[str] | None = None,
    ) -> str | None:
        """
        Return a signed URL that is valid beyond the refresh window.

        Args:
            bucket: Bucket the object lives in
            url: The currently stored URL
            fallback_paths: Candidate paths to try when `url` has no storage path

        Returns:
            The original URL if still fresh, a newly signed URL, or the
            original URL when no candidate path could be signed
        """
        if url and not StorageService.needs_refresh(url):
            return url

        path = StorageService.extract_storage_path(url, bucket)
        candidates = [path] if path else list(fallback_paths or [])

        for candidate in candidates:
            cached = signed_url_cache.get((bucket, candidate))
            if cached:
                return cached
            try:
                signed = StorageService.create_signed_url(bucket, candidate)
            except StorageError as e:
                logger.debug(f"Could not sign {bucket}/{candidate}: {e.details.get('error')}")
                continue
            signed_url_cache.set((bucket, candidate), signed)
            return signed

        if candidates:
            logger.warning(f"Failed to refresh signed URL in {bucket}; keeping stored URL")
        return url

    @staticmethod
    def refresh_thumbnail_urls(thumbnails: list[dict[str, Any]], user_id: str) -> list[dict[str, Any]]:
        """Refresh `image_url` on each thumbnail row in place and return the rows."""
        for thumbnail in thumbnails:
            fallbacks = [
                StorageService.thumbnail_path(user_id, thumbnail["id"], ext)
                for ext in FALLBACK_EXTENSIONS
            ]
            thumbnail["image_url"] = StorageService.refresh_signed_url(
                THUMBNAILS_BUCKET,
                thumbnail.get("image_url"),
                fallback_paths=fallbacks,
            )
        return thumbnails
