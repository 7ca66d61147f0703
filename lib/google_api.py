# =============================================================================
# lib/google_api.py - Google OAuth / YouTube HTTP Helpers
# =============================================================================
# Endpoints, scopes and a shared httpx client for talking to Google.
#
# All calls go through `request_json`, which turns transport errors and
# non-2xx responses into GoogleAPIError so callers handle one error type.
#
# Usage:
#   from lib.google_api import request_json, YOUTUBE_API_BASE
#   channel = request_json("GET", f"{YOUTUBE_API_BASE}/channels", access_token=token,
#                          params={"part": "snippet", "mine": "true"})
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
YOUTUBE_ANALYTICS_API_BASE = "https://youtubeanalytics.googleapis.com/v2"

YOUTUBE_SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/yt-analytics.readonly",
]

HTTP_TIMEOUT_SECONDS = 15.0

_client: httpx.Client | None = None


class GoogleAPIError(Exception):
    """
    A Google API call failed.

    Attributes:
        status_code: HTTP status (None for transport failures)
        error: OAuth error code such as "invalid_grant", when present
        message: Provider error message
    """

    def __init__(self, message: str, status_code: int | None = None, error: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error

    def __str__(self) -> str:
        return f"[{self.status_code}] {self.error or 'error'}: {self.message}"


def get_http_client() -> httpx.Client:
    """Shared client, created on first use."""
    global _client
    if _client is None:
        _client = httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)
    return _client


def set_http_client(client: httpx.Client | None) -> None:
    """Replace the shared client (e.g. with one using httpx.MockTransport)."""
    global _client
    _client = client


def _parse_error(response: httpx.Response) -> GoogleAPIError:
    try:
        body = response.json()
    except ValueError:
        body = {}

    error = body.get("error")
    if isinstance(error, dict):
        # Data API style: {"error": {"code": 403, "message": "...", "status": "..."}}
        return GoogleAPIError(
            message=error.get("message") or response.reason_phrase,
            status_code=response.status_code,
            error=error.get("status"),
        )

    # OAuth style: {"error": "invalid_grant", "error_description": "..."}
    return GoogleAPIError(
        message=body.get("error_description") or response.reason_phrase,
        status_code=response.status_code,
        error=error,
    )


def request_json(
    method: str,
    url: str,
    access_token: str | None = None,
    params: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Make a request to a Google endpoint and return the decoded JSON body.

    Args:
        method: HTTP method
        url: Full endpoint URL
        access_token: Bearer token for API calls
        params: Query parameters
        data: Form body (OAuth token endpoints)

    Raises:
        GoogleAPIError: On transport failure or non-2xx response
    """
    headers = {"Authorization": f"Bearer {access_token}"} if access_token else None

    try:
        response = get_http_client().request(method, url, params=params, data=data, headers=headers)
    except httpx.HTTPError as e:
        logger.warning(f"Google request failed: {method} {url}: {e}")
        raise GoogleAPIError(message=str(e))

    if response.is_error:
        error = _parse_error(response)
        logger.warning(f"Google API error: {method} {url}: {error}")
        raise error

    if not response.content:
        return {}
    return response.json()
