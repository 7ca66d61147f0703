# =============================================================================
# tests/test_subscriptions.py - Subscription Lifecycle and Credit Tests
# =============================================================================
# Status derivation from Stripe, access tiers, tier loading and the atomic
# credit RPC wrappers.
# =============================================================================

import uuid

import pytest

from core.models.subscription import FREE_TIER, AppSubscriptionStatus, TierName
from core.services.subscription_service import (
    SubscriptionService,
    derive_access_tier,
    derive_app_status,
    normalize_status,
    should_block_paid_features,
)
from lib.supabase_client import SupabaseClient
from app.exceptions import DatabaseError, TierRequiredError
from tests.fakes import auth_headers


# =============================================================================
# Lifecycle Derivation
# =============================================================================

class TestDeriveAppStatus:
    """Stripe status -> app status."""

    @pytest.mark.parametrize("stripe_status,expected", [
        ("active", AppSubscriptionStatus.ACTIVE),
        ("trialing", AppSubscriptionStatus.ACTIVE),
        ("past_due", AppSubscriptionStatus.PAST_DUE_LOCKED),
        ("unpaid", AppSubscriptionStatus.PAST_DUE_LOCKED),
        ("incomplete", AppSubscriptionStatus.PAST_DUE_LOCKED),
        ("canceled", AppSubscriptionStatus.CANCELLED),
        ("incomplete_expired", AppSubscriptionStatus.CANCELLED),
    ])
    def test_stripe_statuses(self, stripe_status, expected):
        assert derive_app_status(stripe_status) == expected

    def test_pause_within_period(self):
        status = derive_app_status("active", has_pause_collection=True, is_new_billing_period=False)

        assert status == AppSubscriptionStatus.PAUSED_UNTIL_PERIOD_END

    def test_pause_into_new_period(self):
        status = derive_app_status("active", has_pause_collection=True, is_new_billing_period=True)

        assert status == AppSubscriptionStatus.PAUSED_FREE

    def test_pause_wins_over_past_due(self):
        assert derive_app_status("past_due", has_pause_collection=True) == AppSubscriptionStatus.PAUSED_UNTIL_PERIOD_END


class TestAccessTier:
    """Feature gates use the access tier, not the product tier."""

    @pytest.mark.parametrize("status,expected", [
        (AppSubscriptionStatus.ACTIVE, TierName.PRO),
        (AppSubscriptionStatus.PAUSED_UNTIL_PERIOD_END, TierName.PRO),
        (AppSubscriptionStatus.PAUSED_FREE, TierName.FREE),
        (AppSubscriptionStatus.PAST_DUE_LOCKED, TierName.FREE),
        (AppSubscriptionStatus.CANCELLED, TierName.FREE),
        (AppSubscriptionStatus.FREE, TierName.FREE),
        (None, TierName.FREE),
    ])
    def test_access_tier(self, status, expected):
        assert derive_access_tier(TierName.PRO, status) == expected

    def test_raw_stripe_status_in_old_rows(self):
        assert normalize_status("past_due") == AppSubscriptionStatus.PAST_DUE_LOCKED
        assert derive_access_tier(TierName.PRO, "trialing") == TierName.PRO

    def test_only_past_due_blocks_paid_features(self):
        blocked = [s for s in AppSubscriptionStatus if should_block_paid_features(s)]

        assert blocked == [AppSubscriptionStatus.PAST_DUE_LOCKED]


# =============================================================================
# Tiers
# =============================================================================

class TestTiers:
    """Tier loading and lookup."""

    def test_product_ids_follow_stripe_mode(self, seeded_tiers):
        tier = SubscriptionService.get_tier_by_product_id("prod_advanced")

        assert tier.tier_name == TierName.ADVANCED
        assert tier.credits_per_month == 300

    def test_unknown_product_is_free(self, seeded_tiers):
        assert SubscriptionService.get_tier_by_product_id("prod_mystery").tier_name == TierName.FREE

    def test_tiers_are_cached(self, fake_db, seeded_tiers):
        SubscriptionService.load_tiers()
        SubscriptionService.load_tiers()

        assert fake_db.access_log.count(("subscription_tiers", "select")) == 1

    def test_load_failure_falls_back_to_free(self, fake_db, seeded_tiers):
        fake_db.failing_tables.add("subscription_tiers")

        assert SubscriptionService.load_tiers() == [FREE_TIER]

    def test_failed_load_is_not_retried_immediately(self, fake_db, seeded_tiers):
        fake_db.failing_tables.add("subscription_tiers")

        SubscriptionService.load_tiers()
        SubscriptionService.load_tiers()

        assert fake_db.access_log.count(("subscription_tiers", "select")) == 1

    def test_lapsed_subscription_gets_free_limits(self, user_id, subscribe):
        subscribe(user_id, tier="pro", status="cancelled")

        assert SubscriptionService.get_tier_for_user(user_id).tier_name == TierName.FREE

    def test_require_tier(self, user_id, subscribe):
        subscribe(user_id, tier="advanced")

        assert SubscriptionService.require_tier(user_id, TierName.STARTER).tier_name == TierName.ADVANCED
        with pytest.raises(TierRequiredError):
            SubscriptionService.require_tier(user_id, TierName.PRO)

    def test_tiers_endpoint(self, client, seeded_tiers):
        response = client.get("/api/tiers")

        assert response.status_code == 200
        names = [t["tier_name"] for t in response.json()["tiers"]]
        assert names == ["free", "starter", "advanced", "pro"]


class TestSubscriptionEndpoint:
    """GET /api/subscriptions"""

    def test_active_subscription(self, client, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=650)

        response = client.get("/api/subscriptions", headers=auth_headers(user_id))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert data["tier"]["tier_name"] == "pro"
        assert data["access_tier"] == "pro"
        assert data["credits_remaining"] == 650
        assert data["blocked"] is False

    def test_past_due_is_blocked(self, client, user_id, subscribe):
        subscribe(user_id, tier="pro", status="past_due_locked")

        data = client.get("/api/subscriptions", headers=auth_headers(user_id)).json()

        assert data["tier"]["tier_name"] == "pro"
        assert data["access_tier"] == "free"
        assert data["blocked"] is True

    def test_never_subscribed(self, client, fake_db, user_id, seeded_tiers):
        """Users without a row see the free monthly allowance."""
        data = client.get("/api/subscriptions", headers=auth_headers(user_id)).json()

        assert data["status"] == "free"
        assert data["access_tier"] == "free"
        assert data["credits_remaining"] == 10
        assert fake_db.rows("user_subscriptions") == []


class TestEnsureSubscription:
    """The free row is created on first use."""

    def test_default_credits_without_row(self, user_id, seeded_tiers):
        assert SubscriptionService.get_credits_remaining(user_id) == 10

    def test_creates_free_row_once(self, fake_db, user_id, seeded_tiers):
        # Act
        first = SubscriptionService.ensure_subscription(user_id)
        second = SubscriptionService.ensure_subscription(user_id)

        # Assert
        assert first["credits_remaining"] == 10
        assert second["user_id"] == user_id
        rows = fake_db.rows("user_subscriptions")
        assert len(rows) == 1
        assert rows[0]["status"] == "free"
        assert rows[0]["credits_total"] == 10

    def test_existing_row_is_untouched(self, fake_db, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=42)

        row = SubscriptionService.ensure_subscription(user_id)

        assert row["credits_remaining"] == 42
        assert len(fake_db.rows("user_subscriptions")) == 1

    def test_insert_failure_is_database_error(self, fake_db, monkeypatch, user_id, seeded_tiers):
        monkeypatch.setattr(SupabaseClient, "fetch_subscription", staticmethod(lambda user_id: None))
        fake_db.failing_tables.add("user_subscriptions")

        with pytest.raises(DatabaseError):
            SubscriptionService.ensure_subscription(user_id)


# =============================================================================
# Credits
# =============================================================================

class TestCredits:
    """Atomic credit RPCs."""

    def test_deduct(self, fake_db, user_id, subscribe):
        subscribe(user_id, credits=10)

        result = SubscriptionService.deduct_credits(user_id, 3, "key-1")

        assert result["success"] is True
        assert result["remaining"] == 7
        name, params = fake_db.rpc_calls[0]
        assert name == "decrement_credits_atomic"
        assert params["p_cost"] == 3
        assert params["p_idempotency_key"] == "key-1"

    def test_same_key_charges_once(self, fake_db, user_id, subscribe):
        subscribe(user_id, credits=10)

        SubscriptionService.deduct_credits(user_id, 3, "key-1")
        replay = SubscriptionService.deduct_credits(user_id, 3, "key-1")

        assert replay["duplicate"] is True
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 7

    def test_insufficient_credits(self, fake_db, user_id, subscribe):
        subscribe(user_id, credits=2)

        result = SubscriptionService.deduct_credits(user_id, 3, str(uuid.uuid4()))

        assert result["success"] is False
        assert result["reason"] == "INSUFFICIENT_CREDITS"
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 2

    def test_refund(self, fake_db, user_id, subscribe):
        subscribe(user_id, credits=5)

        SubscriptionService.refund_credits(user_id, 2, "refund-1")
        SubscriptionService.refund_credits(user_id, 2, "refund-1")

        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 7

    def test_rpc_failure_is_database_error(self, fake_db, user_id, subscribe):
        subscribe(user_id, credits=5)
        fake_db.rpc_handlers.pop("decrement_credits_atomic")

        with pytest.raises(DatabaseError):
            SubscriptionService.deduct_credits(user_id, 1, "key")
