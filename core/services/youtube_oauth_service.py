# =============================================================================
# core/services/youtube_oauth_service.py - YouTube Account Connection
# =============================================================================
# OAuth 2.0 authorization-code flow against Google:
#
#   disconnected -> authorizing (state cookie set) -> callback received
#       -> tokens exchanged -> connected
#   connected -> disconnected   (user disconnects, or refresh is rejected)
#
# The CSRF state and the post-connect redirect path travel in one signed,
# short-lived cookie. The callback checks the returned state against it
# before any token exchange.
#
# Access tokens are refreshed lazily, shortly before they expire.
# =============================================================================

import hmac
import logging
import secrets
import time
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

from jose import jwt, JWTError

from lib.google_api import (
    GOOGLE_AUTH_URL,
    GOOGLE_REVOKE_URL,
    GOOGLE_TOKEN_URL,
    YOUTUBE_SCOPES,
    GoogleAPIError,
    request_json,
)
from lib.supabase_client import SupabaseClient
from lib.utils import get_allowed_redirect, normalize_uuid, parse_timestamp, utc_now, utc_now_iso
from core.models.youtube import YouTubeStatus
from app.config import settings
from app.exceptions import (
    ConfigurationError,
    DatabaseError,
    ReauthRequiredError,
    ResourceNotFoundError,
    YouTubeAPIError,
    YouTubeNotConnectedError,
)

logger = logging.getLogger(__name__)

STATE_COOKIE_NAME = "yt_oauth_state"
STATE_COOKIE_MAX_AGE = 600  # 10 minutes
STATE_COOKIE_ALGORITHM = "HS256"

DEFAULT_NEXT_PATH = "/studio?view=youtube"

# Refresh access tokens this long before they expire
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)

# Provider errors meaning the refresh token will never work again
REVOKED_GRANT_ERRORS = ("invalid_grant", "unauthorized_client")


class OAuthCallbackError(Exception):
    """
    The OAuth callback cannot complete.

    The router redirects to `next_path` with `message` as the error.
    """

    def __init__(self, message: str, next_path: str = DEFAULT_NEXT_PATH):
        super().__init__(message)
        self.message = message
        self.next_path = next_path


class YouTubeOAuthService:
    """
    Service for connecting, refreshing and disconnecting YouTube accounts.
    """

    # -------------------------------------------------------------------------
    # Authorize
    # -------------------------------------------------------------------------

    @staticmethod
    def build_authorization(user_id: UUID | str, next_path: str | None = None) -> tuple[str, str]:
        """
        Start the consent flow.

        Args:
            user_id: The user connecting their account
            next_path: Where to send the user afterwards (allowlisted)

        Returns:
            (consent screen URL, signed state cookie value)

        Raises:
            ConfigurationError: If the Google client id is missing
        """
        if not settings.GOOGLE_CLIENT_ID:
            raise ConfigurationError("GOOGLE_CLIENT_ID")

        state = secrets.token_hex(16)
        cookie_value = jwt.encode(
            {
                "state": state,
                "next": get_allowed_redirect(next_path, DEFAULT_NEXT_PATH),
                "sub": normalize_uuid(user_id),
                "exp": int(time.time()) + STATE_COOKIE_MAX_AGE,
            },
            settings.SECRET_KEY,
            algorithm=STATE_COOKIE_ALGORITHM,
        )

        params = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "redirect_uri": settings.youtube_redirect_uri,
            "response_type": "code",
            "scope": " ".join(YOUTUBE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        logger.info(f"Starting YouTube OAuth for user {user_id}")
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}", cookie_value

    @staticmethod
    def read_state_cookie(cookie_value: str | None) -> dict[str, Any] | None:
        """Decode the state cookie; None if missing, tampered with or expired."""
        if not cookie_value:
            return None
        try:
            return jwt.decode(cookie_value, settings.SECRET_KEY, algorithms=[STATE_COOKIE_ALGORITHM])
        except JWTError as e:
            logger.warning(f"Rejected OAuth state cookie: {e}")
            return None

    # -------------------------------------------------------------------------
    # Callback
    # -------------------------------------------------------------------------

    @staticmethod
    def handle_callback(
        user_id: UUID | str,
        code: str | None,
        state: str | None,
        error: str | None,
        cookie_value: str | None,
    ) -> str:
        """
        Finish the consent flow and store the tokens.

        The state check happens before the code is exchanged.

        Returns:
            The path to redirect the user to

        Raises:
            OAuthCallbackError: For any failure; carries the redirect path
        """
        user_id_str = normalize_uuid(user_id)
        stored = YouTubeOAuthService.read_state_cookie(cookie_value)
        next_path = get_allowed_redirect((stored or {}).get("next"), DEFAULT_NEXT_PATH)

        if error:
            logger.info(f"User {user_id_str} denied YouTube access: {error}")
            raise OAuthCallbackError("Google denied access", next_path)

        if not code or not state:
            raise OAuthCallbackError("Missing code or state", next_path)

        if (
            stored is None
            or not hmac.compare_digest(str(stored.get("state", "")), state)
            or stored.get("sub") != user_id_str
        ):
            logger.warning(f"OAuth state mismatch for user {user_id_str}")
            raise OAuthCallbackError("Invalid state", next_path)

        try:
            tokens = YouTubeOAuthService.exchange_code(code)
        except (GoogleAPIError, ConfigurationError) as e:
            logger.error(f"YouTube token exchange failed for user {user_id_str}: {e}")
            raise OAuthCallbackError("Failed to connect YouTube", next_path)

        if not tokens.get("access_token"):
            raise OAuthCallbackError("Failed to connect YouTube", next_path)

        try:
            YouTubeOAuthService.store_tokens(user_id_str, tokens)
        except DatabaseError as e:
            logger.error(f"Failed to store YouTube tokens for user {user_id_str}: {e.details}")
            raise OAuthCallbackError("Failed to save YouTube connection", next_path)

        logger.info(f"Connected YouTube for user {user_id_str}")
        return next_path

    @staticmethod
    def exchange_code(code: str) -> dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Raises:
            ConfigurationError: If Google credentials are missing
            GoogleAPIError: If Google rejects the exchange
        """
        if not settings.GOOGLE_CLIENT_ID:
            raise ConfigurationError("GOOGLE_CLIENT_ID")
        if not settings.GOOGLE_CLIENT_SECRET:
            raise ConfigurationError("GOOGLE_CLIENT_SECRET")

        return request_json("POST", GOOGLE_TOKEN_URL, data={
            "code": code,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "redirect_uri": settings.youtube_redirect_uri,
            "grant_type": "authorization_code",
        })

    @staticmethod
    def store_tokens(user_id: str, tokens: dict[str, Any]) -> dict[str, Any]:
        """
        Upsert the user's integration row with fresh tokens.

        Raises:
            DatabaseError: If the upsert fails
        """
        client = SupabaseClient.get_client()
        expires_at = utc_now() + timedelta(seconds=int(tokens.get("expires_in") or 3600))
        scope = tokens.get("scope")

        row = {
            "user_id": user_id,
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token"),
            "google_user_id": None,
            "expires_at": expires_at.isoformat(),
            "scopes_granted": scope.split(" ") if scope else list(YOUTUBE_SCOPES),
            "is_connected": True,
            "revoked_at": None,
            "updated_at": utc_now_iso(),
        }

        try:
            response = (
                client.table("youtube_integrations")
                .upsert(row, on_conflict="user_id")
                .execute()
            )
        except Exception as e:
            raise DatabaseError("save YouTube connection", str(e))

        return (response.data or [row])[0]

    # -------------------------------------------------------------------------
    # Token Refresh
    # -------------------------------------------------------------------------

    @staticmethod
    def ensure_valid_token(user_id: UUID | str) -> str:
        """
        Return an access token that is valid for at least a few minutes.

        Raises:
            YouTubeNotConnectedError: No connected integration
            ReauthRequiredError: Refresh impossible or rejected; the
                integration has been marked disconnected
            YouTubeAPIError: Refresh failed for a transient reason
        """
        user_id_str = normalize_uuid(user_id)
        integration = SupabaseClient.fetch_youtube_integration(user_id_str)
        if not integration:
            raise YouTubeNotConnectedError()

        expires_at = parse_timestamp(integration.get("expires_at"))
        if expires_at and expires_at - utc_now() > TOKEN_REFRESH_BUFFER and integration.get("access_token"):
            return integration["access_token"]

        return YouTubeOAuthService.refresh_access_token(user_id_str, integration.get("refresh_token"))

    @staticmethod
    def refresh_access_token(user_id: str, refresh_token: str | None) -> str:
        """
        Exchange the refresh token for a new access token and persist it.

        Raises:
            ReauthRequiredError: No refresh token, or Google revoked the grant
            YouTubeAPIError: Any other refresh failure
        """
        if not refresh_token:
            logger.warning(f"No refresh token for user {user_id}; marking YouTube disconnected")
            YouTubeOAuthService.mark_disconnected(user_id)
            raise ReauthRequiredError("YouTube")

        if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
            raise ConfigurationError("GOOGLE_CLIENT_SECRET")

        try:
            tokens = request_json("POST", GOOGLE_TOKEN_URL, data={
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            })
        except GoogleAPIError as e:
            if e.error in REVOKED_GRANT_ERRORS:
                logger.warning(f"YouTube refresh token revoked for user {user_id}: {e.error}")
                YouTubeOAuthService.mark_disconnected(user_id)
                raise ReauthRequiredError("YouTube")
            raise YouTubeAPIError("refresh YouTube access", str(e), e.status_code)

        access_token = tokens.get("access_token")
        if not access_token:
            raise YouTubeAPIError("refresh YouTube access", "no access_token in response")

        expires_at = utc_now() + timedelta(seconds=int(tokens.get("expires_in") or 3600))
        client = SupabaseClient.get_client()
        try:
            client.table("youtube_integrations").update({
                "access_token": access_token,
                "expires_at": expires_at.isoformat(),
                "updated_at": utc_now_iso(),
            }).eq("user_id", user_id).execute()
        except Exception as e:
            # The new token is still usable for this request
            logger.error(f"Failed to persist refreshed YouTube token for user {user_id}: {e}")

        logger.info(f"Refreshed YouTube access token for user {user_id}")
        return access_token

    @staticmethod
    def mark_disconnected(user_id: str) -> None:
        """Flag the integration as disconnected after a failed refresh."""
        client = SupabaseClient.get_client()
        try:
            client.table("youtube_integrations").update({
                "is_connected": False,
                "revoked_at": utc_now_iso(),
                "updated_at": utc_now_iso(),
            }).eq("user_id", user_id).execute()
        except Exception as e:
            raise DatabaseError("update YouTube connection", str(e))

    # -------------------------------------------------------------------------
    # Status / Disconnect
    # -------------------------------------------------------------------------

    @staticmethod
    def get_status(user_id: UUID | str) -> YouTubeStatus:
        """Connection state, including disconnected integrations."""
        integration = SupabaseClient.fetch_youtube_integration(user_id, connected_only=False)
        if not integration:
            return YouTubeStatus(connected=False)

        return YouTubeStatus(
            connected=bool(integration.get("is_connected")),
            scopes_granted=integration.get("scopes_granted") or [],
            expires_at=parse_timestamp(integration.get("expires_at")),
            revoked_at=parse_timestamp(integration.get("revoked_at")),
        )

    @staticmethod
    def disconnect(user_id: UUID | str, revoke_at_google: bool = False) -> dict[str, Any]:
        """
        Disconnect the user's YouTube account and drop its tokens.

        Revoking at Google is best effort; its failure is only logged.

        Raises:
            ResourceNotFoundError: If the user never connected
        """
        user_id_str = normalize_uuid(user_id)
        integration = SupabaseClient.fetch_youtube_integration(user_id_str, connected_only=False)
        if not integration:
            raise ResourceNotFoundError("YouTube integration")

        if not integration.get("is_connected"):
            return {"success": True, "already_disconnected": True}

        if revoke_at_google:
            token = integration.get("refresh_token") or integration.get("access_token")
            if token:
                try:
                    request_json("POST", GOOGLE_REVOKE_URL, data={"token": token})
                    logger.info(f"Revoked YouTube grant at Google for user {user_id_str}")
                except GoogleAPIError as e:
                    logger.warning(f"Google revoke failed for user {user_id_str}: {e}")

        client = SupabaseClient.get_client()
        try:
            client.table("youtube_integrations").update({
                "is_connected": False,
                "revoked_at": utc_now_iso(),
                "access_token": "",
                "refresh_token": None,
                "updated_at": utc_now_iso(),
            }).eq("user_id", user_id_str).execute()
        except Exception as e:
            raise DatabaseError("disconnect YouTube", str(e))

        logger.info(f"Disconnected YouTube for user {user_id_str}")
        return {"success": True, "already_disconnected": False}
