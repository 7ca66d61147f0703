# =============================================================================
# core/services/billing_service.py - Stripe Billing Actions
# =============================================================================
# User-initiated billing: Checkout sessions for new subscriptions, Customer
# Portal links, pausing/resuming collection and the credit ledger.
#
# Stripe is the source of truth for the subscription itself. Checkout and
# the portal only hand out URLs; the resulting changes arrive through the
# webhook. Pause and resume also update the local status right away so
# feature gates don't wait for the webhook.
# =============================================================================

import logging
from typing import Any
from uuid import UUID

import stripe

from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, utc_now_iso
from core.models.subscription import AppSubscriptionStatus, PortalFlow
from core.services.subscription_service import SubscriptionService, derive_app_status, stripe_object_to_dict
from app.config import settings
from app.exceptions import (
    ConfigurationError,
    DatabaseError,
    InvalidRequestError,
    PaymentProviderError,
)

logger = logging.getLogger(__name__)

PORTAL_FLOW_TYPES = {
    PortalFlow.CANCEL: "subscription_cancel",
    PortalFlow.UPDATE: "subscription_update",
}


def _api_key() -> str:
    if not settings.STRIPE_SECRET_KEY:
        logger.error("STRIPE_SECRET_KEY not configured")
        raise ConfigurationError("STRIPE_SECRET_KEY")
    return settings.STRIPE_SECRET_KEY


def _app_url(path: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}{path}"


class BillingService:
    """Stripe calls made on behalf of the signed-in user."""

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    @staticmethod
    def get_or_create_customer(user_id: str | UUID, email: str | None) -> str:
        """
        Stripe customer id for the user, creating the customer if needed.

        A stored id that Stripe doesn't know (e.g. created in test mode
        before switching to live keys) is replaced.

        Raises:
            InvalidRequestError: If a new customer is needed and there's no email
            PaymentProviderError: If Stripe rejects the request
        """
        user_id = normalize_uuid(user_id)
        api_key = _api_key()
        subscription = SubscriptionService.ensure_subscription(user_id)

        customer_id = subscription.get("stripe_customer_id")
        if customer_id:
            try:
                stripe.Customer.retrieve(customer_id, api_key=api_key)
                return customer_id
            except stripe.InvalidRequestError as e:
                logger.warning(f"Stored Stripe customer {customer_id} for user {user_id} is unknown to Stripe: {e}")
            except stripe.StripeError as e:
                raise PaymentProviderError("fetch customer", str(e))

        if not email:
            raise InvalidRequestError("User email is required", field="email")

        try:
            customer = stripe.Customer.create(email=email, metadata={"user_id": user_id}, api_key=api_key)
        except stripe.StripeError as e:
            raise PaymentProviderError("create customer", str(e))

        client = SupabaseClient.get_client()
        try:
            client.table("user_subscriptions").update({
                "stripe_customer_id": customer.id,
                "updated_at": utc_now_iso(),
            }).eq("user_id", user_id).execute()
        except Exception as e:
            raise DatabaseError("save customer", str(e))

        logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
        return customer.id

    # -------------------------------------------------------------------------
    # Checkout / Portal
    # -------------------------------------------------------------------------

    @staticmethod
    def create_checkout_session(user_id: str | UUID, email: str | None, price_id: str) -> str:
        """
        Start a subscription Checkout for a price.

        Returns:
            The hosted Checkout URL

        Raises:
            ConfigurationError: If Stripe isn't configured
            PaymentProviderError: If Stripe rejects the request
        """
        user_id = normalize_uuid(user_id)
        customer_id = BillingService.get_or_create_customer(user_id, email)

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=_app_url("/studio?session_id={CHECKOUT_SESSION_ID}"),
                cancel_url=_app_url("/studio"),
                metadata={"user_id": user_id},
                api_key=_api_key(),
            )
        except stripe.InvalidRequestError as e:
            if "No such price" in str(e):
                logger.error(f"Price {price_id} not found in Stripe {settings.stripe_mode} mode")
                raise InvalidRequestError(
                    f"Price '{price_id}' is not available in {settings.stripe_mode} mode",
                    field="price_id",
                )
            raise PaymentProviderError("create checkout session", str(e))
        except stripe.StripeError as e:
            raise PaymentProviderError("create checkout session", str(e))

        logger.info(f"Created checkout session {session.id} for user {user_id} ({price_id})")
        return session.url

    @staticmethod
    def create_portal_session(user_id: str | UUID, flow: PortalFlow | None = None) -> str:
        """
        Link to the Stripe Customer Portal.

        With a flow, the portal opens straight on cancelling or changing
        the current subscription.

        Raises:
            InvalidRequestError: If the user has no Stripe customer (or no
                subscription for a flow)
            PaymentProviderError: If Stripe rejects the request
        """
        user_id = normalize_uuid(user_id)
        api_key = _api_key()
        subscription = SupabaseClient.fetch_subscription(user_id) or {}

        customer_id = subscription.get("stripe_customer_id")
        if not customer_id:
            raise InvalidRequestError("No Stripe customer found. Please create a subscription first.")

        params: dict[str, Any] = {"customer": customer_id, "return_url": _app_url("/studio")}
        if flow:
            subscription_id = subscription.get("subscription_id")
            if not subscription_id:
                raise InvalidRequestError("No subscription to manage")
            flow_type = PORTAL_FLOW_TYPES[flow]
            params["flow_data"] = {"type": flow_type, flow_type: {"subscription": subscription_id}}

        try:
            session = stripe.billing_portal.Session.create(api_key=api_key, **params)
        except stripe.StripeError as e:
            raise PaymentProviderError("create customer portal session", str(e))

        return session.url

    # -------------------------------------------------------------------------
    # Pause / Resume
    # -------------------------------------------------------------------------

    @staticmethod
    def _paid_subscription_id(user_id: str) -> str:
        subscription = SupabaseClient.fetch_subscription(user_id) or {}
        subscription_id = subscription.get("subscription_id")
        if not subscription_id:
            raise InvalidRequestError("No active subscription")
        return subscription_id

    @staticmethod
    def _save_status(user_id: str, status: AppSubscriptionStatus, stripe_status: str | None) -> None:
        client = SupabaseClient.get_client()
        try:
            client.table("user_subscriptions").update({
                "status": status.value,
                "stripe_status": stripe_status,
                "updated_at": utc_now_iso(),
            }).eq("user_id", user_id).execute()
        except Exception as e:
            raise DatabaseError("update subscription", str(e))

    @staticmethod
    def pause_subscription(user_id: str | UUID) -> AppSubscriptionStatus:
        """Stop collecting payments; paid access runs to the end of the period."""
        user_id = normalize_uuid(user_id)
        api_key = _api_key()
        subscription_id = BillingService._paid_subscription_id(user_id)

        try:
            updated = stripe.Subscription.modify(
                subscription_id,
                pause_collection={"behavior": "void"},
                api_key=api_key,
            )
        except stripe.StripeError as e:
            raise PaymentProviderError("pause subscription", str(e))

        stripe_status = stripe_object_to_dict(updated).get("status")
        status = derive_app_status(stripe_status, has_pause_collection=True)
        BillingService._save_status(user_id, status, stripe_status)
        logger.info(f"Paused subscription {subscription_id} for user {user_id}")
        return status

    @staticmethod
    def resume_subscription(user_id: str | UUID) -> AppSubscriptionStatus:
        """Resume collection on a paused subscription."""
        user_id = normalize_uuid(user_id)
        api_key = _api_key()
        subscription_id = BillingService._paid_subscription_id(user_id)

        try:
            updated = stripe.Subscription.modify(subscription_id, pause_collection="", api_key=api_key)
        except stripe.StripeError as e:
            raise PaymentProviderError("resume subscription", str(e))

        stripe_status = stripe_object_to_dict(updated).get("status")
        status = derive_app_status(stripe_status)
        BillingService._save_status(user_id, status, stripe_status)
        logger.info(f"Resumed subscription {subscription_id} for user {user_id}: {status.value}")
        return status

    # -------------------------------------------------------------------------
    # Credit Ledger
    # -------------------------------------------------------------------------

    @staticmethod
    def get_credit_history(
        user_id: str | UUID,
        limit: int = 50,
        offset: int = 0,
        transaction_type: str | None = None,
    ) -> dict[str, Any]:
        """
        The user's credit transactions, newest first.

        Returns:
            {"transactions": [...], "count": total matching rows}
        """
        client = SupabaseClient.get_client()
        query = (
            client.table("credit_transactions")
            .select("*", count="exact")
            .eq("user_id", normalize_uuid(user_id))
        )
        if transaction_type and transaction_type.strip():
            query = query.eq("type", transaction_type.strip())

        try:
            response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        except Exception as e:
            raise DatabaseError("fetch credit history", str(e))

        return {"transactions": response.data or [], "count": response.count or 0}
