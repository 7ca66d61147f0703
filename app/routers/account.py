# =============================================================================
# app/routers/account.py - Account Overview Endpoint
# =============================================================================

from fastapi import APIRouter, Depends

from app.auth import get_current_user, AuthUser
from core.services.account_service import AccountService

router = APIRouter()


@router.get("/overview")
async def account_overview(
    user: AuthUser = Depends(get_current_user),
):
    """
    Subscription, usage, YouTube connection and unread notifications.

    Sections that failed to load are null and listed under `errors`; the
    response is still 200.
    """
    return await AccountService.get_overview(user.id)
