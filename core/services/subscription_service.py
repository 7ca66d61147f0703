# =============================================================================
# core/services/subscription_service.py - Tiers, Lifecycle and Credits
# =============================================================================
# Resolves which tier a user is on, derives the app-level subscription
# status from Stripe state, and wraps the atomic credit RPCs.
#
# Tier rows change rarely, so they are cached in-process. A failed load is
# not retried for a short interval and the last good copy is served instead.
# =============================================================================

import json
import logging
import time
from datetime import datetime
from typing import Any
from uuid import UUID

from lib.supabase_client import SupabaseClient
from lib.ttl_cache import TTLCache
from lib.utils import normalize_uuid, parse_timestamp
from core.models.subscription import (
    FREE_TIER,
    AppSubscriptionStatus,
    SubscriptionSummary,
    TierConfig,
    TierName,
)
from app.config import settings
from app.exceptions import DatabaseError, TierRequiredError

logger = logging.getLogger(__name__)

TIER_RANK = {
    TierName.FREE: 0,
    TierName.STARTER: 1,
    TierName.ADVANCED: 2,
    TierName.PRO: 3,
}

# Wait this long after a failed tier load before querying again
TIERS_FAILURE_RETRY_SECONDS = 30

tiers_cache = TTLCache(maxsize=1, ttl=settings.TIERS_CACHE_TTL_SECONDS, name="subscription_tiers")
_last_good_tiers: list[TierConfig] | None = None
_last_failure_at: float = 0


# =============================================================================
# Lifecycle Derivation
# =============================================================================

def derive_app_status(
    stripe_status: str | None,
    has_pause_collection: bool = False,
    is_new_billing_period: bool = False,
) -> AppSubscriptionStatus:
    """
    Map a Stripe subscription status onto the app lifecycle status.

    A paused subscription keeps paid access until its billing period rolls
    over, after which it is treated as free.
    """
    if has_pause_collection:
        if is_new_billing_period:
            return AppSubscriptionStatus.PAUSED_FREE
        return AppSubscriptionStatus.PAUSED_UNTIL_PERIOD_END

    if stripe_status in ("past_due", "unpaid", "incomplete"):
        return AppSubscriptionStatus.PAST_DUE_LOCKED

    if stripe_status in ("canceled", "incomplete_expired"):
        return AppSubscriptionStatus.CANCELLED

    return AppSubscriptionStatus.ACTIVE


def derive_access_tier(product_tier: TierName, status: AppSubscriptionStatus | str | None) -> TierName:
    """Tier used for feature gates; some statuses force free access."""
    if status is None:
        return TierName.FREE

    status = normalize_status(status)
    if status in (
        AppSubscriptionStatus.FREE,
        AppSubscriptionStatus.PAUSED_FREE,
        AppSubscriptionStatus.PAST_DUE_LOCKED,
        AppSubscriptionStatus.CANCELLED,
    ):
        return TierName.FREE
    return product_tier


def normalize_status(value: AppSubscriptionStatus | str | None) -> AppSubscriptionStatus | None:
    """Coerce a stored status column; raw Stripe statuses from older rows are mapped."""
    if value is None:
        return None
    try:
        return AppSubscriptionStatus(value)
    except ValueError:
        return derive_app_status(value)


def should_block_paid_features(status: AppSubscriptionStatus | str | None) -> bool:
    """Paid features are blocked only while a payment problem is unresolved."""
    return status == AppSubscriptionStatus.PAST_DUE_LOCKED


def stripe_object_to_dict(obj: Any) -> dict[str, Any]:
    """Convert a Stripe API object into plain dicts and lists."""
    if isinstance(obj, dict):
        return obj
    return json.loads(str(obj))


class SubscriptionService:
    """
    Service for subscription tiers and credits.

    All methods are static; tier data is cached at module level.
    """

    # -------------------------------------------------------------------------
    # Tiers
    # -------------------------------------------------------------------------

    @staticmethod
    def load_tiers() -> list[TierConfig]:
        """
        Load all tiers, cheapest first.

        Product ids come from the test or live column depending on the
        configured Stripe key.
        """
        global _last_good_tiers, _last_failure_at

        cached = tiers_cache.get("all")
        if cached is not None:
            return cached

        if _last_failure_at and time.monotonic() - _last_failure_at < TIERS_FAILURE_RETRY_SECONDS:
            return _last_good_tiers or [FREE_TIER]

        client = SupabaseClient.get_client()
        product_column = f"{settings.stripe_mode}_product_id"

        try:
            response = (
                client.table("subscription_tiers")
                .select("*")
                .order("price")
                .execute()
            )
            tiers = [
                TierConfig.from_row(row, product_id=row.get(product_column))
                for row in response.data or []
            ]
        except Exception as e:
            logger.warning(f"Failed to load subscription tiers, using fallback: {e}")
            _last_failure_at = time.monotonic()
            return _last_good_tiers or [FREE_TIER]

        if not tiers:
            tiers = [FREE_TIER]

        tiers_cache.set("all", tiers)
        _last_good_tiers = tiers
        _last_failure_at = 0
        logger.debug(f"Loaded {len(tiers)} subscription tiers ({settings.stripe_mode} mode)")
        return tiers

    @staticmethod
    def get_tier_by_name(tier_name: TierName | str) -> TierConfig:
        """Tier config for a tier name, falling back to free."""
        for tier in SubscriptionService.load_tiers():
            if tier.tier_name == tier_name:
                return tier
        return FREE_TIER

    @staticmethod
    def get_tier_by_product_id(product_id: str | None) -> TierConfig:
        """Tier config for a Stripe product id; unknown or missing ids map to free."""
        if not product_id:
            return SubscriptionService.get_tier_by_name(TierName.FREE)
        for tier in SubscriptionService.load_tiers():
            if tier.product_id == product_id:
                return tier
        logger.warning(f"Unknown Stripe product id {product_id}; treating as free tier")
        return SubscriptionService.get_tier_by_name(TierName.FREE)

    @staticmethod
    def get_tier_for_user(user_id: str | UUID) -> TierConfig:
        """
        The tier that gates the user's features right now.

        Combines the subscribed product with the lifecycle status, so a
        lapsed or locked subscription gets free-tier limits.
        """
        subscription = SupabaseClient.fetch_subscription(user_id)
        if not subscription:
            return SubscriptionService.get_tier_by_name(TierName.FREE)

        product_tier = SubscriptionService.get_tier_by_product_id(subscription.get("product_id"))
        access_tier = derive_access_tier(product_tier.tier_name, subscription.get("status"))
        if access_tier == product_tier.tier_name:
            return product_tier
        return SubscriptionService.get_tier_by_name(access_tier)

    @staticmethod
    def require_tier(user_id: str | UUID, required: TierName) -> TierConfig:
        """
        Ensure the user is on at least `required`.

        Raises:
            TierRequiredError: If the user's access tier is lower
        """
        tier = SubscriptionService.get_tier_for_user(user_id)
        if TIER_RANK[tier.tier_name] < TIER_RANK[required]:
            raise TierRequiredError(required.value, tier.tier_name.value)
        return tier

    @staticmethod
    def get_summary(user_id: str | UUID) -> SubscriptionSummary:
        """Subscription, tier and credits for the account page."""
        subscription = SupabaseClient.fetch_subscription(user_id)
        if not subscription:
            free = SubscriptionService.get_tier_by_name(TierName.FREE)
            return SubscriptionSummary(
                status=AppSubscriptionStatus.FREE,
                tier=free,
                access_tier=TierName.FREE,
                credits_total=free.credits_per_month,
                credits_remaining=free.credits_per_month,
            )

        product_tier = SubscriptionService.get_tier_by_product_id(subscription.get("product_id"))
        status = normalize_status(subscription.get("status"))
        return SubscriptionSummary(
            status=status,
            stripe_status=subscription.get("stripe_status"),
            tier=product_tier,
            access_tier=derive_access_tier(product_tier.tier_name, status),
            credits_total=subscription.get("credits_total") or 0,
            credits_remaining=subscription.get("credits_remaining") or 0,
            current_period_start=subscription.get("current_period_start"),
            current_period_end=subscription.get("current_period_end"),
            blocked=should_block_paid_features(status),
        )

    @staticmethod
    def is_new_billing_period(existing: dict[str, Any] | None, period_start: datetime | None) -> bool:
        """True if Stripe reports a later period start than the stored one."""
        if not existing or period_start is None:
            return False
        stored = parse_timestamp(existing.get("current_period_start"))
        return stored is None or period_start > stored

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    @staticmethod
    def get_credits_remaining(user_id: str | UUID) -> int:
        """Credits left in the current period; users without a row have the free allowance."""
        subscription = SupabaseClient.fetch_subscription(user_id)
        if not subscription:
            return SubscriptionService.get_tier_by_name(TierName.FREE).credits_per_month
        return subscription.get("credits_remaining") or 0

    @staticmethod
    def ensure_subscription(user_id: str | UUID) -> dict[str, Any]:
        """
        Return the user's subscription row, creating the free row on first use.

        The credit RPCs operate on this row, so it must exist before a charge.

        Raises:
            DatabaseError: If the row cannot be created
        """
        user_id = normalize_uuid(user_id)
        existing = SupabaseClient.fetch_subscription(user_id)
        if existing:
            return existing

        free = SubscriptionService.get_tier_by_name(TierName.FREE)
        row = {
            "user_id": user_id,
            "status": AppSubscriptionStatus.FREE.value,
            "product_id": None,
            "subscription_id": None,
            "stripe_customer_id": None,
            "credits_total": free.credits_per_month,
            "credits_remaining": free.credits_per_month,
        }

        client = SupabaseClient.get_client()
        try:
            response = client.table("user_subscriptions").insert(row).execute()
        except Exception as e:
            if SupabaseClient.is_unique_violation(e):
                # A concurrent request created it first
                return SupabaseClient.fetch_subscription(user_id) or row
            raise DatabaseError("create subscription", str(e))

        logger.info(f"Created free subscription for user {user_id} ({free.credits_per_month} credits)")
        return (response.data or [row])[0]

    @staticmethod
    def _call_credit_rpc(function: str, params: dict[str, Any]) -> dict[str, Any]:
        client = SupabaseClient.get_client()

        try:
            response = client.rpc(function, params).execute()
        except Exception as e:
            logger.error(f"Credit RPC {function} failed for user {params.get('p_user_id')}: {e}")
            raise DatabaseError("update credits", str(e))

        data = response.data
        if isinstance(data, str):
            data = json.loads(data)
        if not data:
            return {"success": False, "reason": "NO_RESPONSE"}
        return data

    @staticmethod
    def deduct_credits(
        user_id: str | UUID,
        cost: int,
        idempotency_key: str,
        thumbnail_id: str | None = None,
        description: str | None = None,
        transaction_type: str = "generation",
    ) -> dict[str, Any]:
        """
        Atomically decrement credits.

        Replaying the same idempotency key does not charge twice; the
        result then has `duplicate` set.

        Returns:
            {"success": bool, "duplicate": bool, "remaining": int, "reason": str}
        """
        result = SubscriptionService._call_credit_rpc("decrement_credits_atomic", {
            "p_user_id": normalize_uuid(user_id),
            "p_cost": cost,
            "p_idempotency_key": idempotency_key,
            "p_thumbnail_id": thumbnail_id,
            "p_description": description,
            "p_transaction_type": transaction_type,
        })
        logger.info(f"Deducted {cost} credit(s) for user {user_id}: {result}")
        return result

    @staticmethod
    def refund_credits(
        user_id: str | UUID,
        amount: int,
        idempotency_key: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        """Atomically give credits back (e.g. after a failed generation)."""
        result = SubscriptionService._call_credit_rpc("increment_credits_atomic", {
            "p_user_id": normalize_uuid(user_id),
            "p_amount": amount,
            "p_idempotency_key": idempotency_key,
            "p_description": description,
            "p_transaction_type": "refund",
        })
        logger.info(f"Refunded {amount} credit(s) to user {user_id}: {result}")
        return result


def reset_tier_cache() -> None:
    """Forget cached tiers and any recorded load failure."""
    global _last_good_tiers, _last_failure_at
    tiers_cache.clear()
    _last_good_tiers = None
    _last_failure_at = 0
