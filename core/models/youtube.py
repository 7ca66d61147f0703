# =============================================================================
# core/models/youtube.py - YouTube Integration Schemas
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, Field


class YouTubeVideo(BaseModel):
    """One upload from the user's channel."""
    video_id: str
    title: str
    published_at: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None
    like_count: int | None = None
    comment_count: int | None = None


class VideosPage(BaseModel):
    """Response for GET /youtube/videos."""
    success: bool = True
    videos: list[YouTubeVideo]
    next_page_token: str | None = None
    has_more: bool = False
    count: int = 0


class YouTubeStatus(BaseModel):
    """Connection state of the user's YouTube account."""
    connected: bool
    scopes_granted: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None
    revoked_at: datetime | None = None


class DisconnectRequest(BaseModel):
    """Body for POST /youtube/disconnect."""
    revoke_at_google: bool = False
