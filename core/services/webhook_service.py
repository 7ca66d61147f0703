# =============================================================================
# core/services/webhook_service.py - Stripe Webhook Processing
# =============================================================================
# Verifies Stripe webhook deliveries and applies subscription changes.
#
# Idempotency:
# - An event is claimed by inserting its id into stripe_webhook_events
#   before any handler runs
# - A delivery whose claim hits the unique constraint is acknowledged as a
#   duplicate without changes, so concurrent deliveries mutate only once
# - If the handler fails or doesn't apply the event, the claim is deleted
#   and Stripe's retry is handled again
# =============================================================================

import json
import logging
from datetime import datetime, timezone
from typing import Any

import stripe

from lib.supabase_client import SupabaseClient
from lib.utils import parse_timestamp, utc_now_iso
from core.models.notification import NotificationCreate, NotificationSeverity, NotificationType
from core.models.subscription import AppSubscriptionStatus, TierConfig
from core.services.notification_service import NotificationService
from core.services.subscription_service import (
    SubscriptionService,
    derive_app_status,
    stripe_object_to_dict,
)
from app.config import settings
from app.exceptions import ConfigurationError, DatabaseError, InvalidRequestError, ViewBaitException

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPES = (
    "checkout.session.completed",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


def _timestamp(value: int | None) -> datetime | None:
    """Stripe sends epoch seconds."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _object_id(value: Any) -> str | None:
    """Stripe fields may hold an id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _subscription_fields(subscription: dict[str, Any]) -> dict[str, Any]:
    """
    Product and billing period of a subscription.

    Newer API versions report the period on the subscription item rather
    than on the subscription.
    """
    items = (subscription.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}

    return {
        "product_id": _object_id(price.get("product")),
        "period_start": _timestamp(
            subscription.get("current_period_start") or first_item.get("current_period_start")
        ),
        "period_end": _timestamp(
            subscription.get("current_period_end") or first_item.get("current_period_end")
        ),
    }


class WebhookService:
    """
    Service for Stripe webhook ingestion.

    Handlers return True when the event was applied and False when it was
    deliberately skipped (e.g. an unknown customer).
    """

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    @staticmethod
    def verify_event(payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Check the Stripe signature and decode the event.

        Raises:
            ConfigurationError: If the webhook secret is not set
            InvalidRequestError: If the signature is missing or invalid
        """
        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET")

        if not signature:
            raise InvalidRequestError("No signature provided", field="stripe-signature")

        try:
            stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {e}")
            raise InvalidRequestError("Invalid webhook payload")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise InvalidRequestError("Webhook signature verification failed")

        return json.loads(payload)

    # -------------------------------------------------------------------------
    # Idempotency
    # -------------------------------------------------------------------------

    @staticmethod
    def claim_event(event: dict[str, Any]) -> bool:
        """
        Reserve an event for this delivery.

        The unique event_id makes the insert the lock: exactly one delivery
        of an event gets True, every other one gets False.

        Raises:
            DatabaseError: If the insert fails for any other reason
        """
        client = SupabaseClient.get_client()
        try:
            client.table("stripe_webhook_events").insert({
                "event_id": event["id"],
                "event_type": event.get("type"),
                "data": event.get("data"),
                "processed_at": utc_now_iso(),
            }).execute()
        except Exception as e:
            if SupabaseClient.is_unique_violation(e):
                return False
            raise DatabaseError("record webhook event", str(e))
        return True

    @staticmethod
    def release_event(event_id: str) -> None:
        """Drop a claim so the next delivery of the event is handled again."""
        client = SupabaseClient.get_client()
        try:
            client.table("stripe_webhook_events").delete().eq("event_id", event_id).execute()
        except Exception as e:
            logger.error(f"Failed to release webhook event {event_id}; retries will be treated as duplicates: {e}")

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    @staticmethod
    def process_event(event: dict[str, Any]) -> dict[str, Any]:
        """
        Apply a verified event exactly once.

        Returns:
            {"received": True} plus "duplicate": True for repeat deliveries

        Raises:
            Exception: Any unexpected failure; the claim is released first
        """
        event_id = event["id"]
        event_type = event.get("type")

        if not WebhookService.claim_event(event):
            logger.info(f"Duplicate webhook event {event_id} ({event_type})")
            return {"received": True, "duplicate": True}

        data = (event.get("data") or {}).get("object") or {}

        try:
            if event_type == "checkout.session.completed":
                processed = WebhookService.handle_checkout_completed(data)
            elif event_type == "customer.subscription.updated":
                processed = WebhookService.handle_subscription_updated(data)
            elif event_type == "customer.subscription.deleted":
                processed = WebhookService.handle_subscription_deleted(data)
            else:
                logger.debug(f"Ignoring webhook event type {event_type}")
                processed = True
        except Exception:
            WebhookService.release_event(event_id)
            raise

        if not processed:
            logger.warning(f"Webhook event {event_id} ({event_type}) was not applied")
            WebhookService.release_event(event_id)
            return {"received": True}

        logger.info(f"Processed webhook event {event_id} ({event_type})")
        return {"received": True}

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    @staticmethod
    def _retrieve_subscription(subscription_id: str) -> dict[str, Any]:
        if not settings.STRIPE_SECRET_KEY:
            raise ConfigurationError("STRIPE_SECRET_KEY")
        subscription = stripe.Subscription.retrieve(subscription_id, api_key=settings.STRIPE_SECRET_KEY)
        return stripe_object_to_dict(subscription)

    @staticmethod
    def _find_by_customer(customer_id: str | None) -> dict[str, Any] | None:
        if not customer_id:
            return None
        client = SupabaseClient.get_client()
        try:
            return SupabaseClient.fetch_first(
                client.table("user_subscriptions").select("*").eq("stripe_customer_id", customer_id)
            )
        except Exception as e:
            raise DatabaseError("fetch subscription", str(e))

    @staticmethod
    def handle_checkout_completed(session: dict[str, Any]) -> bool:
        """Create or replace the user's subscription after checkout."""
        if session.get("mode") != "subscription":
            logger.debug(f"Checkout session {session.get('id')} is not a subscription checkout")
            return True

        user_id = (session.get("metadata") or {}).get("user_id") or session.get("client_reference_id")
        subscription_id = _object_id(session.get("subscription"))
        if not user_id or not subscription_id:
            logger.warning(f"Checkout session {session.get('id')} has no user or subscription")
            return False

        subscription = WebhookService._retrieve_subscription(subscription_id)
        fields = _subscription_fields(subscription)
        tier = SubscriptionService.get_tier_by_product_id(fields["product_id"])

        existing = SupabaseClient.fetch_subscription(user_id)
        is_new = not existing or existing.get("subscription_id") != subscription_id
        is_tier_change = bool(existing) and existing.get("product_id") != fields["product_id"]

        stripe_status = subscription.get("status")
        status = derive_app_status(stripe_status, bool(subscription.get("pause_collection")))

        row = {
            "user_id": user_id,
            "stripe_customer_id": _object_id(session.get("customer")) or _object_id(subscription.get("customer")),
            "subscription_id": subscription_id,
            "product_id": fields["product_id"],
            "status": status.value,
            "stripe_status": stripe_status,
            "credits_total": tier.credits_per_month,
            "current_period_start": fields["period_start"].isoformat() if fields["period_start"] else None,
            "current_period_end": fields["period_end"].isoformat() if fields["period_end"] else None,
            "updated_at": utc_now_iso(),
        }
        if is_new or is_tier_change:
            row["credits_remaining"] = tier.credits_per_month

        client = SupabaseClient.get_client()
        try:
            client.table("user_subscriptions").upsert(row, on_conflict="user_id").execute()
        except Exception as e:
            raise DatabaseError("save subscription", str(e))

        logger.info(f"Subscription {subscription_id} activated for user {user_id} ({tier.tier_name.value})")
        WebhookService._notify(
            user_id,
            title=f"Welcome to {tier.name}",
            body=f"Your subscription is active. You have {tier.credits_per_month} credits this month.",
            severity=NotificationSeverity.SUCCESS,
            event="subscription_activated",
        )
        return True

    @staticmethod
    def handle_subscription_updated(subscription: dict[str, Any]) -> bool:
        """
        Sync product, status and period from Stripe.

        Credits reset to the tier allowance on a tier change, or on a new
        billing period while the subscription is active.
        """
        existing = WebhookService._find_by_customer(_object_id(subscription.get("customer")))
        if not existing:
            logger.warning(f"No subscription row for Stripe customer {subscription.get('customer')}")
            return False

        fields = _subscription_fields(subscription)
        if not fields["product_id"]:
            logger.warning(f"Subscription {subscription.get('id')} has no product")
            return False

        tier: TierConfig = SubscriptionService.get_tier_by_product_id(fields["product_id"])
        is_tier_change = existing.get("product_id") != fields["product_id"]
        is_new_period = SubscriptionService.is_new_billing_period(existing, fields["period_start"])
        if parse_timestamp(existing.get("current_period_start")) is None:
            is_new_period = True

        stripe_status = subscription.get("status")
        status = derive_app_status(
            stripe_status,
            has_pause_collection=bool(subscription.get("pause_collection")),
            is_new_billing_period=is_new_period,
        )

        changes = {
            "subscription_id": subscription.get("id"),
            "product_id": fields["product_id"],
            "status": status.value,
            "stripe_status": stripe_status,
            "credits_total": tier.credits_per_month,
            "current_period_start": fields["period_start"].isoformat() if fields["period_start"] else None,
            "current_period_end": fields["period_end"].isoformat() if fields["period_end"] else None,
            "updated_at": utc_now_iso(),
        }
        if (is_tier_change or is_new_period) and status == AppSubscriptionStatus.ACTIVE:
            changes["credits_remaining"] = tier.credits_per_month

        client = SupabaseClient.get_client()
        try:
            client.table("user_subscriptions").update(changes).eq("user_id", existing["user_id"]).execute()
        except Exception as e:
            raise DatabaseError("update subscription", str(e))

        logger.info(
            f"Subscription {subscription.get('id')} updated for user {existing['user_id']}: "
            f"status={status.value} tier_change={is_tier_change} new_period={is_new_period}"
        )

        if status == AppSubscriptionStatus.PAST_DUE_LOCKED and existing.get("status") != status.value:
            WebhookService._notify(
                existing["user_id"],
                title="Payment problem",
                body="We couldn't process your last payment. Update your payment method to keep paid features.",
                severity=NotificationSeverity.ERROR,
                event="payment_failed",
            )
        return True

    @staticmethod
    def handle_subscription_deleted(subscription: dict[str, Any]) -> bool:
        """Mark the subscription cancelled; remaining credits are kept."""
        existing = WebhookService._find_by_customer(_object_id(subscription.get("customer")))
        if not existing:
            logger.warning(f"No subscription row for Stripe customer {subscription.get('customer')}")
            return False

        client = SupabaseClient.get_client()
        try:
            client.table("user_subscriptions").update({
                "status": AppSubscriptionStatus.CANCELLED.value,
                "stripe_status": subscription.get("status") or "canceled",
                "updated_at": utc_now_iso(),
            }).eq("user_id", existing["user_id"]).execute()
        except Exception as e:
            raise DatabaseError("cancel subscription", str(e))

        logger.info(f"Subscription {subscription.get('id')} cancelled for user {existing['user_id']}")
        WebhookService._notify(
            existing["user_id"],
            title="Subscription cancelled",
            body="Your subscription has ended. You can resubscribe at any time.",
            severity=NotificationSeverity.WARNING,
            event="subscription_cancelled",
        )
        return True

    @staticmethod
    def _notify(
        user_id: str,
        title: str,
        body: str,
        severity: NotificationSeverity,
        event: str,
    ) -> None:
        notification = NotificationCreate(
            user_id=user_id,
            type=NotificationType.BILLING,
            severity=severity,
            title=title,
            body=body,
            action_url="/studio?view=billing",
            action_label="View billing",
            metadata={"event": event},
        )
        try:
            NotificationService.create_notification(notification)
        except ViewBaitException as e:
            logger.warning(f"Could not create billing notification for user {user_id}: {e.message}")
