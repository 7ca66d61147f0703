# =============================================================================
# core/services/youtube_service.py - YouTube Data / Analytics Reads
# =============================================================================
# Reads the connected user's channel, uploads and analytics.
#
# Caching (process-local, see lib/ttl_cache.py):
# - First page of the uploads list: 10 minutes per user
# - Uploads playlist id: 1 hour per user
#
# A cached first page is served without touching the user's tokens.
# =============================================================================

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from lib.google_api import YOUTUBE_ANALYTICS_API_BASE, YOUTUBE_API_BASE, GoogleAPIError, request_json
from lib.supabase_client import SupabaseClient
from lib.ttl_cache import TTLCache, get_or_fetch
from lib.utils import normalize_uuid, utc_now, utc_now_iso
from core.models.youtube import VideosPage, YouTubeVideo
from core.services.youtube_oauth_service import YouTubeOAuthService
from app.config import settings
from app.exceptions import InvalidRequestError, ResourceNotFoundError, YouTubeAPIError

logger = logging.getLogger(__name__)

VIDEOS_PER_PAGE = 10
MAX_ANALYTICS_DAYS = 365

videos_cache = TTLCache(maxsize=500, ttl=settings.YOUTUBE_VIDEOS_CACHE_TTL_SECONDS, name="youtube_videos")
playlist_cache = TTLCache(maxsize=500, ttl=settings.YOUTUBE_PLAYLIST_CACHE_TTL_SECONDS, name="youtube_playlists")


def _best_thumbnail(thumbnails: dict[str, Any]) -> str | None:
    for size in ("high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class YouTubeService:
    """
    Service for reading a user's YouTube data.

    Every upstream failure surfaces as YouTubeAPIError.
    """

    @staticmethod
    def _call(operation: str, url: str, access_token: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            return request_json("GET", url, access_token=access_token, params=params)
        except GoogleAPIError as e:
            raise YouTubeAPIError(operation, str(e), e.status_code)

    # -------------------------------------------------------------------------
    # Videos
    # -------------------------------------------------------------------------

    @staticmethod
    def list_videos(user_id: UUID | str, page_token: str | None = None) -> VideosPage:
        """
        One page of the user's uploads, newest first.

        Args:
            user_id: The connected user
            page_token: Token from a previous page; None for the first page

        Raises:
            YouTubeNotConnectedError: No connected integration
            ReauthRequiredError: Tokens could not be refreshed
            YouTubeAPIError: Upstream failure
        """
        user_id_str = normalize_uuid(user_id)

        if not page_token:
            cached = videos_cache.get(user_id_str)
            if cached is not None:
                logger.debug(f"Serving cached videos for user {user_id_str}")
                return cached

        page = YouTubeService._fetch_videos_page(user_id_str, page_token)

        if not page_token and page.videos:
            videos_cache.set(user_id_str, page)
        return page

    @staticmethod
    def _fetch_videos_page(user_id: str, page_token: str | None) -> VideosPage:
        access_token = YouTubeOAuthService.ensure_valid_token(user_id)
        playlist_id = YouTubeService._get_uploads_playlist_id(user_id, access_token)

        params = {
            "part": "snippet,contentDetails",
            "playlistId": playlist_id,
            "maxResults": VIDEOS_PER_PAGE,
        }
        if page_token:
            params["pageToken"] = page_token

        items = YouTubeService._call("fetch videos", f"{YOUTUBE_API_BASE}/playlistItems", access_token, params)

        videos: list[YouTubeVideo] = []
        seen: set[str] = set()
        for item in items.get("items", []):
            snippet = item.get("snippet") or {}
            video_id = (item.get("contentDetails") or {}).get("videoId") or (snippet.get("resourceId") or {}).get("videoId")
            if not video_id or video_id in seen:
                continue
            seen.add(video_id)
            videos.append(YouTubeVideo(
                video_id=video_id,
                title=snippet.get("title") or "",
                published_at=snippet.get("publishedAt"),
                thumbnail_url=_best_thumbnail(snippet.get("thumbnails") or {}),
            ))

        if videos:
            YouTubeService._attach_statistics(videos, access_token)

        next_page_token = items.get("nextPageToken")
        return VideosPage(
            videos=videos,
            next_page_token=next_page_token,
            has_more=bool(next_page_token),
            count=len(videos),
        )

    @staticmethod
    def _get_uploads_playlist_id(user_id: str, access_token: str) -> str:
        """The channel's uploads playlist id (cached per user)."""
        return get_or_fetch(
            playlist_cache,
            user_id,
            lambda: YouTubeService._fetch_uploads_playlist_id(access_token),
        )

    @staticmethod
    def _fetch_uploads_playlist_id(access_token: str) -> str:
        channels = YouTubeService._call(
            "fetch channel",
            f"{YOUTUBE_API_BASE}/channels",
            access_token,
            {"part": "contentDetails", "mine": "true"},
        )
        items = channels.get("items") or []
        playlist_id = (
            ((items[0].get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
            if items else None
        )
        if not playlist_id:
            raise ResourceNotFoundError("YouTube channel")
        return playlist_id

    @staticmethod
    def _attach_statistics(videos: list[YouTubeVideo], access_token: str) -> None:
        stats = YouTubeService._call(
            "fetch video statistics",
            f"{YOUTUBE_API_BASE}/videos",
            access_token,
            {"part": "statistics", "id": ",".join(v.video_id for v in videos)},
        )
        by_id = {item.get("id"): item.get("statistics") or {} for item in stats.get("items", [])}

        for video in videos:
            statistics = by_id.get(video.video_id, {})
            video.view_count = _to_int(statistics.get("viewCount"))
            video.like_count = _to_int(statistics.get("likeCount"))
            video.comment_count = _to_int(statistics.get("commentCount"))

    # -------------------------------------------------------------------------
    # Channel
    # -------------------------------------------------------------------------

    @staticmethod
    def get_channel(user_id: UUID | str) -> dict[str, Any]:
        """
        The authenticated user's channel.

        The channel is also stored in youtube_channels; a failed write is
        only logged.
        """
        user_id_str = normalize_uuid(user_id)
        access_token = YouTubeOAuthService.ensure_valid_token(user_id_str)

        response = YouTubeService._call(
            "fetch channel",
            f"{YOUTUBE_API_BASE}/channels",
            access_token,
            {"part": "snippet,statistics,brandingSettings", "mine": "true"},
        )
        items = response.get("items") or []
        if not items:
            raise ResourceNotFoundError("YouTube channel")

        item = items[0]
        snippet = item.get("snippet") or {}
        statistics = item.get("statistics") or {}
        channel = {
            "channel_id": item.get("id"),
            "title": snippet.get("title"),
            "description": snippet.get("description"),
            "custom_url": snippet.get("customUrl"),
            "thumbnail_url": _best_thumbnail(snippet.get("thumbnails") or {}),
            "subscriber_count": _to_int(statistics.get("subscriberCount")),
            "video_count": _to_int(statistics.get("videoCount")),
            "view_count": _to_int(statistics.get("viewCount")),
            "published_at": snippet.get("publishedAt"),
        }

        client = SupabaseClient.get_client()
        try:
            client.table("youtube_channels").upsert(
                {**channel, "user_id": user_id_str, "fetched_at": utc_now_iso()},
                on_conflict="user_id",
            ).execute()
        except Exception as e:
            logger.warning(f"Failed to store channel for user {user_id_str}: {e}")

        return channel

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    @staticmethod
    def get_analytics(user_id: UUID | str, days: int = 28) -> dict[str, Any]:
        """
        Channel totals for the last `days` days, ending yesterday.

        Raises:
            InvalidRequestError: If days is out of range
        """
        if days < 1 or days > MAX_ANALYTICS_DAYS:
            raise InvalidRequestError(f"days must be between 1 and {MAX_ANALYTICS_DAYS}", field="days")

        user_id_str = normalize_uuid(user_id)
        access_token = YouTubeOAuthService.ensure_valid_token(user_id_str)

        end_date = (utc_now() - timedelta(days=1)).date()
        start_date = end_date - timedelta(days=days - 1)

        report = YouTubeService._call(
            "fetch analytics",
            f"{YOUTUBE_ANALYTICS_API_BASE}/reports",
            access_token,
            {
                "ids": "channel==MINE",
                "startDate": start_date.isoformat(),
                "endDate": end_date.isoformat(),
                "metrics": "views,estimatedMinutesWatched,averageViewDuration,subscribersGained,likes",
            },
        )

        headers = [h.get("name") for h in report.get("columnHeaders", [])]
        rows = report.get("rows") or []
        totals = dict(zip(headers, rows[0])) if rows else {name: 0 for name in headers}

        return {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "days": days,
            "metrics": totals,
        }

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    @staticmethod
    def clear_user_caches(user_id: UUID | str) -> None:
        """Drop cached reads for a user (after connect or disconnect)."""
        user_id_str = normalize_uuid(user_id)
        videos_cache.delete(user_id_str)
        playlist_cache.delete(user_id_str)
