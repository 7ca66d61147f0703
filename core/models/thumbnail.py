# =============================================================================
# core/models/thumbnail.py - Thumbnail Schemas
# =============================================================================

from enum import Enum

from pydantic import BaseModel, Field


class ThumbnailOrderBy(str, Enum):
    """Sortable columns for the thumbnail gallery."""
    CREATED_AT = "created_at"
    TITLE = "title"
    SHARE_CLICK_COUNT = "share_click_count"


class ThumbnailUpdate(BaseModel):
    """
    Fields a user may change on a thumbnail.

    Example:
        {"liked": true}
    """
    title: str | None = Field(default=None, min_length=1, max_length=300)
    liked: bool | None = None
    is_public: bool | None = None
    project_id: str | None = None


class ThumbnailList(BaseModel):
    """Response for GET /thumbnails."""
    thumbnails: list[dict]
    count: int
    has_more: bool
