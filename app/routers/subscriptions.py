# =============================================================================
# app/routers/subscriptions.py - Subscription, Billing and Tier Endpoints
# =============================================================================
# Read the subscription, start Stripe Checkout, open the Customer Portal,
# pause/resume billing and page through the credit ledger.
# =============================================================================

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.auth import get_current_user, AuthUser
from core.models.subscription import (
    CheckoutRequest,
    PortalFlow,
    SubscriptionAction,
    SubscriptionActionRequest,
    SubscriptionSummary,
)
from core.services.billing_service import BillingService
from core.services.subscription_service import SubscriptionService

router = APIRouter()


@router.get("/subscriptions", response_model=SubscriptionSummary)
async def get_subscription(
    user: AuthUser = Depends(get_current_user),
):
    """
    The user's subscription: product tier, access tier and credits.

    `access_tier` is what feature gates use; it drops to free while a
    subscription is lapsed, cancelled or locked for non-payment.
    """
    return SubscriptionService.get_summary(user.id)


@router.post("/subscriptions")
async def subscription_action(
    body: SubscriptionActionRequest | None = None,
    user: AuthUser = Depends(get_current_user),
):
    """
    Act on the user's subscription.

    - pause / resume: stop or restart payment collection
    - manage_cancel / manage_update: Customer Portal link for that flow
    - no action: make sure the free subscription row exists
    """
    action = body.action if body else None

    if action == SubscriptionAction.PAUSE:
        status = await asyncio.to_thread(BillingService.pause_subscription, user.id)
        return {"success": True, "status": status.value}

    if action == SubscriptionAction.RESUME:
        status = await asyncio.to_thread(BillingService.resume_subscription, user.id)
        return {"success": True, "status": status.value}

    if action in (SubscriptionAction.MANAGE_CANCEL, SubscriptionAction.MANAGE_UPDATE):
        flow = PortalFlow.CANCEL if action == SubscriptionAction.MANAGE_CANCEL else PortalFlow.UPDATE
        url = await asyncio.to_thread(BillingService.create_portal_session, user.id, flow)
        return {"url": url}

    return {"subscription": SubscriptionService.ensure_subscription(user.id)}


@router.get("/subscriptions/credits/history")
async def credit_history(
    user: AuthUser = Depends(get_current_user),
    limit: Annotated[int, Query(ge=1, le=100, description="Page size")] = 50,
    offset: Annotated[int, Query(ge=0, description="Rows to skip")] = 0,
    type: Annotated[str | None, Query(description="Only this transaction type")] = None,
):
    """The user's credit transactions, newest first."""
    return BillingService.get_credit_history(user.id, limit=limit, offset=offset, transaction_type=type)


@router.post("/create-checkout")
async def create_checkout(
    request: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
):
    """Start Stripe Checkout for a subscription price; returns the hosted URL."""
    url = await asyncio.to_thread(BillingService.create_checkout_session, user.id, user.email, request.price_id)
    return {"url": url}


@router.post("/customer-portal")
async def customer_portal(
    user: AuthUser = Depends(get_current_user),
):
    """Stripe Customer Portal link for managing payment details and invoices."""
    url = await asyncio.to_thread(BillingService.create_portal_session, user.id)
    return {"url": url}


@router.get("/tiers")
async def list_tiers():
    """All subscription tiers, cheapest first."""
    return {"tiers": SubscriptionService.load_tiers()}
