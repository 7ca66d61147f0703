# =============================================================================
# app/auth/dependencies.py - FastAPI Auth Dependencies
# =============================================================================
# Provides dependency injection for authentication.
#
# The session token is read from the Authorization header, or from the
# Supabase auth cookie for browser navigations (e.g. the OAuth callback).
#
# Supports both:
# - ES256 (Supabase JWT signing keys) via JWKS
# - HS256 (legacy Supabase JWT secret)
#
# Every failure is a 401; no route body runs without a valid session.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

import logging
from typing import Any
from uuid import UUID

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from lib.ttl_cache import TTLCache
from app.config import settings
from app.auth.models import AuthUser
from app.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

# auto_error=False: a missing header falls through to the cookie, then 401
security = HTTPBearer(auto_error=False)

JWKS_CACHE_TTL = 3600  # 1 hour
jwks_cache = TTLCache(maxsize=1, ttl=JWKS_CACHE_TTL, name="jwks")


def _get_jwks_url() -> str:
    """JWKS endpoint of the Supabase project."""
    return f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"


def _fetch_jwks() -> dict[str, Any]:
    """Fetch JWKS from Supabase with caching."""
    cached = jwks_cache.get("keys")
    if cached is not None:
        return cached

    try:
        response = httpx.get(_get_jwks_url(), timeout=10)
        response.raise_for_status()
        keys = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Failed to fetch JWKS: {e}")
        return {"keys": []}

    jwks_cache.set("keys", keys)
    logger.debug("Fetched JWKS")
    return keys


def _get_signing_key(token: str) -> tuple[Any, str]:
    """
    Get the key and algorithm to verify a token with.

    Raises:
        UnauthorizedError: If no usable key exists
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        raise UnauthorizedError("Invalid token")

    alg = header.get("alg", "HS256")
    kid = header.get("kid")

    if alg == "HS256":
        if not settings.SUPABASE_JWT_SECRET:
            logger.error("HS256 token received but SUPABASE_JWT_SECRET is not set")
            raise UnauthorizedError("Invalid token")
        return settings.SUPABASE_JWT_SECRET, "HS256"

    if kid:
        for key in _fetch_jwks().get("keys", []):
            if key.get("kid") == kid:
                return key, alg

    logger.warning(f"No signing key found for alg={alg}, kid={kid}")
    raise UnauthorizedError("Invalid token")


def extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    """Bearer token from the header, else the auth cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SUPABASE_AUTH_COOKIE) or None


def decode_token(token: str) -> AuthUser:
    """
    Verify a Supabase JWT and build the AuthUser.

    Raises:
        UnauthorizedError: If the token is invalid, expired or lacks a user id
    """
    signing_key, algorithm = _get_signing_key(token)

    try:
        payload = jwt.decode(
            token,
            signing_key,
            algorithms=[algorithm],
            audience="authenticated",
        )
    except ExpiredSignatureError:
        logger.info("JWT token has expired")
        raise UnauthorizedError("Token has expired")
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("JWT token missing 'sub' claim")
        raise UnauthorizedError("Invalid token: missing user ID")

    try:
        user_uuid = UUID(user_id)
    except ValueError:
        logger.warning(f"Invalid UUID in token: {user_id}")
        raise UnauthorizedError("Invalid token: malformed user ID")

    return AuthUser(id=user_uuid, email=payload.get("email"))


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthUser:
    """
    Extract and validate the user from the Supabase session token.

    Returns:
        AuthUser: The authenticated user

    Raises:
        UnauthorizedError: 401 if the token is missing, invalid or expired
    """
    token = extract_token(request, credentials)
    if not token:
        raise UnauthorizedError()

    user = decode_token(token)
    logger.debug(f"Authenticated user: {user.id}")
    return user


async def get_current_user_optional(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthUser | None:
    """
    Like get_current_user, but returns None instead of raising.

    Usage:
        @router.get("/public-or-private")
        async def flexible_route(user: AuthUser | None = Depends(get_current_user_optional)):
            ...
    """
    token = extract_token(request, credentials)
    if not token:
        return None

    try:
        return decode_token(token)
    except UnauthorizedError:
        return None
