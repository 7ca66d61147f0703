# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

import re
from datetime import datetime, timezone
from typing import Any
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Example:
        user_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        user_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


# =============================================================================
# Time Utilities
# =============================================================================

def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string for database columns."""
    return utc_now().isoformat()


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """
    Parse a timestamptz column value into an aware datetime.

    Accepts the trailing "Z" that Postgres/Stripe sometimes emit.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# =============================================================================
# Redirect Allowlist
# =============================================================================
# Post-login redirects only ever go to a few relative paths in the studio.

ALLOWED_REDIRECT_PATHS = ("/", "/studio", "/onboarding")
DEFAULT_REDIRECT = "/studio"

_EDITOR_SLUG = re.compile(r"^[a-zA-Z0-9-]+$")


def is_allowed_redirect(value: str | None) -> bool:
    """
    True if `value` is a safe post-login redirect target.

    Rejects absolute and protocol-relative URLs. Accepts /, /studio,
    /onboarding (with any query string) and editor links /e/<slug>.
    """
    if not value or not value.strip():
        return False

    candidate = value.strip()
    if candidate.startswith(("//", "http://", "https://")):
        return False
    if not candidate.startswith("/"):
        return False

    path = candidate.split("?", 1)[0]
    if path in ALLOWED_REDIRECT_PATHS:
        return True
    if path.startswith("/e/"):
        return bool(_EDITOR_SLUG.match(path[3:]))
    return False


def get_allowed_redirect(value: str | None, fallback: str = DEFAULT_REDIRECT) -> str:
    """Return `value` if it is an allowed redirect, otherwise `fallback`."""
    return value.strip() if is_allowed_redirect(value) else fallback


# =============================================================================
# Logging Helpers
# =============================================================================

def log_context(**context: Any) -> str:
    """
    Format request context for log lines.

    Example:
        logger.error(f"Failed to list experiments {log_context(route='GET /api/experiments', user_id=uid)}: {e}")
        # Failed to list experiments [route=GET /api/experiments user_id=...]: ...
    """
    parts = [f"{key}={value}" for key, value in context.items() if value is not None]
    return f"[{' '.join(parts)}]"
