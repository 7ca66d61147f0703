# =============================================================================
# app/routers/youtube.py - YouTube Integration Endpoints
# =============================================================================
# Connect/disconnect a YouTube channel (OAuth) and read channel data.
#
# The connect endpoints are browser navigations: they answer with redirects
# rather than JSON.
# =============================================================================

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from app.auth import get_current_user, get_current_user_optional, AuthUser
from app.config import settings
from core.models.subscription import TierName
from core.models.youtube import DisconnectRequest, VideosPage, YouTubeStatus
from core.services.subscription_service import SubscriptionService
from core.services.youtube_oauth_service import (
    DEFAULT_NEXT_PATH,
    STATE_COOKIE_MAX_AGE,
    STATE_COOKIE_NAME,
    OAuthCallbackError,
    YouTubeOAuthService,
)
from core.services.youtube_service import YouTubeService

logger = logging.getLogger(__name__)

router = APIRouter()

STATE_COOKIE_PATH = "/api/youtube/connect"


def _app_redirect(path: str, **params: str) -> RedirectResponse:
    """Redirect to a path on the web app, adding query parameters."""
    url = f"{settings.APP_URL.rstrip('/')}{path}"
    if params:
        url += ("&" if "?" in url else "?") + urlencode(params)
    return RedirectResponse(url, status_code=302)


def _clear_state_cookie(response: RedirectResponse) -> RedirectResponse:
    response.delete_cookie(STATE_COOKIE_NAME, path=STATE_COOKIE_PATH)
    return response


# =============================================================================
# Connect (OAuth)
# =============================================================================

@router.get("/connect/authorize")
async def authorize(
    user: AuthUser = Depends(get_current_user),
    next_path: Annotated[str | None, Query(alias="next", description="Path to return to")] = None,
):
    """
    Start connecting a YouTube channel. Requires the Pro plan.

    Redirects to Google's consent screen and sets the signed state cookie.
    """
    SubscriptionService.require_tier(user.id, TierName.PRO)
    url, cookie_value = YouTubeOAuthService.build_authorization(user.id, next_path)

    response = RedirectResponse(url, status_code=302)
    response.set_cookie(
        STATE_COOKIE_NAME,
        cookie_value,
        max_age=STATE_COOKIE_MAX_AGE,
        path=STATE_COOKIE_PATH,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    return response


@router.get("/connect/callback")
async def callback(
    request: Request,
    user: AuthUser | None = Depends(get_current_user_optional),
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Google redirects here after consent.

    Always redirects back to the app and clears the state cookie. Failures
    are reported in the `error` query parameter.
    """
    cookie_value = request.cookies.get(STATE_COOKIE_NAME)

    if user is None:
        logger.warning("YouTube OAuth callback without a session")
        return _clear_state_cookie(_app_redirect("/auth", error="Please sign in and try again"))

    try:
        next_path = YouTubeOAuthService.handle_callback(user.id, code, state, error, cookie_value)
    except OAuthCallbackError as e:
        return _clear_state_cookie(_app_redirect(e.next_path, error=e.message))

    YouTubeService.clear_user_caches(user.id)
    return _clear_state_cookie(_app_redirect(next_path or DEFAULT_NEXT_PATH))


@router.get("/status", response_model=YouTubeStatus)
async def connection_status(
    user: AuthUser = Depends(get_current_user),
):
    """Whether the user's YouTube channel is connected."""
    return YouTubeOAuthService.get_status(user.id)


@router.post("/disconnect")
async def disconnect(
    request: DisconnectRequest | None = None,
    user: AuthUser = Depends(get_current_user),
):
    """
    Disconnect the user's YouTube channel. Requires the Pro plan.

    Set `revoke_at_google` to also revoke the grant at Google.
    """
    SubscriptionService.require_tier(user.id, TierName.PRO)
    revoke = request.revoke_at_google if request else False
    result = YouTubeOAuthService.disconnect(user.id, revoke_at_google=revoke)
    YouTubeService.clear_user_caches(user.id)
    return result


# =============================================================================
# Channel Data
# =============================================================================

@router.get("/videos", response_model=VideosPage)
async def list_videos(
    user: AuthUser = Depends(get_current_user),
    page_token: Annotated[str | None, Query(description="Token of the page to fetch")] = None,
):
    """The user's uploads, 10 per page, newest first."""
    return YouTubeService.list_videos(user.id, page_token)


@router.get("/channel")
async def get_channel(
    user: AuthUser = Depends(get_current_user),
):
    """The user's YouTube channel with statistics."""
    return {"channel": YouTubeService.get_channel(user.id)}


@router.get("/analytics")
async def get_analytics(
    user: AuthUser = Depends(get_current_user),
    days: Annotated[int, Query(ge=1, le=365, description="Days to report on, ending yesterday")] = 28,
):
    """Channel totals from YouTube Analytics."""
    return YouTubeService.get_analytics(user.id, days)
