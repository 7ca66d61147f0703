# =============================================================================
# app/exceptions.py - Custom Exceptions and Handlers
# =============================================================================
# Centralized exception handling for the API.
#
# Every error the API returns has the same shape:
#   {"detail": "...", "code": "MACHINE_READABLE_CODE", "suggestion": "..."}
#
# Server-side failures (status >= 500) are logged with request context and
# never return their internal details to the client.
# =============================================================================

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ViewBaitException(Exception):
    """
    Base exception for the ViewBait API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Request Exceptions (4xx)
# =============================================================================

class InvalidRequestError(ViewBaitException):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details={"field": field} if field else None,
        )


class UnauthorizedError(ViewBaitException):
    """Raised when a caller cannot be authenticated."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            code="UNAUTHORIZED",
            status_code=401,
        )


class ReauthRequiredError(ViewBaitException):
    """Raised when a third-party connection must be re-authorized by the user."""

    def __init__(self, provider: str = "youtube"):
        super().__init__(
            message=f"Your {provider} connection has expired or was revoked",
            code="REAUTH_REQUIRED",
            status_code=401,
            suggestion="Reconnect your account from the studio settings",
            details={"provider": provider},
        )


class ForbiddenError(ViewBaitException):
    """Raised when an authenticated user may not perform an action."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(
            message=message,
            code="FORBIDDEN",
            status_code=403,
        )


class TierRequiredError(ViewBaitException):
    """Raised when a feature needs a higher subscription tier."""

    def __init__(self, required_tier: str, current_tier: str):
        super().__init__(
            message=f"This feature requires the {required_tier} plan",
            code="TIER_REQUIRED",
            status_code=403,
            suggestion=f"Upgrade to {required_tier} to unlock it",
            details={"required_tier": required_tier, "current_tier": current_tier},
        )


class TierLimitError(ViewBaitException):
    """Raised when a request exceeds what the user's tier allows."""

    def __init__(self, message: str, tier: str, **details: Any):
        super().__init__(
            message=message,
            code="TIER_LIMIT",
            status_code=403,
            suggestion="Upgrade your plan for higher limits",
            details={"tier": tier, **details},
        )


class InsufficientCreditsError(ViewBaitException):
    """Raised when the user does not have enough credits for an operation."""

    def __init__(self, credits_remaining: int, required: int):
        super().__init__(
            message=f"Insufficient credits: {required} required, {credits_remaining} remaining",
            code="INSUFFICIENT_CREDITS",
            status_code=403,
            suggestion="Purchase more credits or wait for your next billing period",
            details={"credits_remaining": credits_remaining, "required": required},
        )


class ResourceNotFoundError(ViewBaitException):
    """
    Raised when a row does not exist or is not owned by the caller.

    Both cases return the same response so row existence never leaks.
    """

    def __init__(self, resource: str, resource_id: str | None = None):
        super().__init__(
            message=f"{resource.capitalize()} not found",
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "id": resource_id} if resource_id else {"resource": resource},
        )


class YouTubeNotConnectedError(ViewBaitException):
    """Raised when the user has no active YouTube connection."""

    def __init__(self):
        super().__init__(
            message="YouTube account not connected",
            code="NOT_CONNECTED",
            status_code=404,
            suggestion="Connect your YouTube account first",
        )


# =============================================================================
# Server Exceptions (5xx)
# =============================================================================
# Messages here are client-safe; the underlying cause goes in `details`,
# which the handler logs but strips from the response.

class ConfigurationError(ViewBaitException):
    """Raised when a required secret or setting is missing."""

    def __init__(self, setting: str):
        super().__init__(
            message="Server configuration error",
            code="CONFIG_ERROR",
            status_code=500,
            details={"setting": setting},
        )


class DatabaseError(ViewBaitException):
    """Raised when a database operation fails."""

    def __init__(self, operation: str, error: str | None = None):
        super().__init__(
            message=f"Failed to {operation}",
            code="DATABASE_ERROR",
            status_code=500,
            details={"operation": operation, "error": error},
        )


class StorageError(ViewBaitException):
    """Raised when an object storage operation fails."""

    def __init__(self, operation: str, error: str | None = None):
        super().__init__(
            message=f"Failed to {operation}",
            code="STORAGE_ERROR",
            status_code=500,
            details={"operation": operation, "error": error},
        )


class AIServiceError(ViewBaitException):
    """Raised when the image generation provider fails."""

    def __init__(self, message: str = "Failed to generate thumbnail", error: str | None = None):
        super().__init__(
            message=message,
            code="AI_SERVICE_ERROR",
            status_code=500,
            suggestion="Try again in a moment",
            details={"error": error} if error else None,
        )


class YouTubeAPIError(ViewBaitException):
    """Raised when a Google/YouTube API call fails."""

    def __init__(self, operation: str, error: str | None = None, upstream_status: int | None = None):
        super().__init__(
            message=f"Failed to {operation}",
            code="YOUTUBE_API_ERROR",
            status_code=500,
            details={"operation": operation, "error": error, "upstream_status": upstream_status},
        )


class PaymentProviderError(ViewBaitException):
    """Raised when a Stripe API call fails."""

    def __init__(self, operation: str, error: str | None = None):
        super().__init__(
            message=f"Failed to {operation}",
            code="PAYMENT_ERROR",
            status_code=502,
            suggestion="Try again in a moment",
            details={"operation": operation, "error": error},
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def viewbait_exception_handler(
    request: Request,
    exc: ViewBaitException
) -> JSONResponse:
    """
    Handle ViewBaitException and return a structured JSON response.

    Server errors are logged with their details, which are then dropped
    from the response body.
    """
    body = exc.to_dict()
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code} on {request.method} {request.url.path}: {exc.message} details={exc.details}"
        )
        body.pop("details", None)

    return JSONResponse(
        status_code=exc.status_code,
        content=body,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors.

    Returns 400 with the failing fields so clients can highlight them.
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", []) if loc != "body")
        errors.append({
            "field": field,
            "message": error.get("msg"),
        })

    return JSONResponse(
        status_code=400,
        content={
            "detail": "Request validation failed",
            "code": "VALIDATION_ERROR",
            "suggestion": "Check the request parameters and try again",
            "details": {"errors": errors},
        }
    )
