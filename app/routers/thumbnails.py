# =============================================================================
# app/routers/thumbnails.py - Thumbnail Gallery Endpoints
# =============================================================================
# List, view, edit and delete the user's generated thumbnails.
# All endpoints require authentication.
# =============================================================================

from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query

from app.auth import get_current_user, AuthUser
from core.models.thumbnail import ThumbnailList, ThumbnailOrderBy, ThumbnailUpdate
from core.services.thumbnail_service import ThumbnailService

router = APIRouter()


@router.get("", response_model=ThumbnailList)
async def list_thumbnails(
    user: AuthUser = Depends(get_current_user),
    limit: Annotated[int, Query(ge=1, le=100, description="Page size")] = 24,
    offset: Annotated[int, Query(ge=0, description="Rows to skip")] = 0,
    order_by: Annotated[ThumbnailOrderBy, Query(description="Sort column")] = ThumbnailOrderBy.CREATED_AT,
    order_direction: Annotated[Literal["asc", "desc"], Query(description="Sort direction")] = "desc",
    favorites_only: Annotated[bool, Query(description="Only liked thumbnails")] = False,
    project_id: Annotated[str | None, Query(description="Filter by project")] = None,
):
    """
    List the user's thumbnails, newest first by default.

    Image URLs close to expiry are re-signed before being returned.
    """
    return ThumbnailService.list_thumbnails(
        user.id,
        limit=limit,
        offset=offset,
        order_by=order_by,
        ascending=order_direction == "asc",
        favorites_only=favorites_only,
        project_id=project_id,
    )


@router.get("/{thumbnail_id}")
async def get_thumbnail(
    thumbnail_id: Annotated[UUID, Path(description="Thumbnail UUID")],
    user: AuthUser = Depends(get_current_user),
):
    """Get one thumbnail. Returns 404 unless the user owns it."""
    return {"thumbnail": ThumbnailService.get_thumbnail(str(thumbnail_id), user.id)}


@router.patch("/{thumbnail_id}")
async def update_thumbnail(
    thumbnail_id: Annotated[UUID, Path(description="Thumbnail UUID")],
    update: ThumbnailUpdate,
    user: AuthUser = Depends(get_current_user),
):
    """
    Update a thumbnail's title, liked flag, visibility or project.

    Returns 404 unless the user owns it.
    """
    return {"thumbnail": ThumbnailService.update_thumbnail(str(thumbnail_id), user.id, update)}


@router.delete("/{thumbnail_id}")
async def delete_thumbnail(
    thumbnail_id: Annotated[UUID, Path(description="Thumbnail UUID")],
    user: AuthUser = Depends(get_current_user),
):
    """Delete a thumbnail and its image file."""
    ThumbnailService.delete_thumbnail(str(thumbnail_id), user.id)
    return {"success": True, "thumbnail_id": str(thumbnail_id)}
