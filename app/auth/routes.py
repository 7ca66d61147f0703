# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Sign-up and login happen client-side against Supabase Auth. The API only
# checks that a session token is still accepted.
# =============================================================================

from fastapi import APIRouter, Depends

from app.auth.dependencies import get_current_user
from app.auth.models import AuthUser, VerifyResponse

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/verify", response_model=VerifyResponse)
async def verify_token(
    user: AuthUser = Depends(get_current_user)
) -> VerifyResponse:
    """
    Verify that the current token is valid.

    Raises:
        401: If token is missing, invalid or expired
    """
    return VerifyResponse(user_id=user.id, email=user.email)
