# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Swaps the Supabase client for the in-memory FakeSupabase
# - Resets process-local caches between tests
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-supabase-tokens")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-client-secret")
os.environ.setdefault("INTERNAL_API_SECRET", "test-internal-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-state-cookies")
os.environ.setdefault("APP_URL", "http://localhost:3000")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from lib.google_api import YOUTUBE_SCOPES, set_http_client
from lib.supabase_client import SupabaseClient
from lib.ttl_cache import clear_all_caches
from lib.utils import utc_now
from core.services import generation_service
from core.services.subscription_service import reset_tier_cache
from tests.fakes import FakeGoogle, FakeSupabase


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def fake_db(monkeypatch):
    """Every test runs against a fresh in-memory database."""
    fake = FakeSupabase()
    monkeypatch.setattr(SupabaseClient, "_instance", fake)
    clear_all_caches()
    reset_tier_cache()
    yield fake
    clear_all_caches()
    reset_tier_cache()
    set_http_client(None)
    generation_service._image_generator = None


@pytest.fixture
def client():
    """HTTP client for the FastAPI app."""
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def other_user_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def tier_rows() -> list[dict]:
    """subscription_tiers rows as stored in the database."""
    return [
        {
            "tier_name": "free",
            "name": "Free",
            "price": 0,
            "credits_per_month": 10,
            "allowed_resolutions": ["1K"],
            "has_watermark": True,
            "max_variations": 1,
            "can_create_custom": False,
            "storage_retention_days": 30,
            "test_product_id": None,
            "live_product_id": None,
        },
        {
            "tier_name": "starter",
            "name": "Starter",
            "price": 9,
            "credits_per_month": 100,
            "allowed_resolutions": ["1K", "2K"],
            "has_watermark": False,
            "max_variations": 2,
            "can_create_custom": True,
            "test_product_id": "prod_starter",
            "live_product_id": "prod_live_starter",
        },
        {
            "tier_name": "advanced",
            "name": "Advanced",
            "price": 19,
            "credits_per_month": 300,
            "allowed_resolutions": ["1K", "2K", "4K"],
            "has_watermark": False,
            "max_variations": 3,
            "can_create_custom": True,
            "test_product_id": "prod_advanced",
            "live_product_id": "prod_live_advanced",
        },
        {
            "tier_name": "pro",
            "name": "Pro",
            "price": 49,
            "credits_per_month": 700,
            "allowed_resolutions": ["1K", "2K", "4K"],
            "has_watermark": False,
            "max_variations": 4,
            "can_create_custom": True,
            "test_product_id": "prod_pro",
            "live_product_id": "prod_live_pro",
        },
    ]


@pytest.fixture
def seeded_tiers(fake_db, tier_rows):
    fake_db.seed("subscription_tiers", tier_rows)
    return tier_rows


@pytest.fixture
def subscribe(fake_db, seeded_tiers):
    """Give a user a subscription row: subscribe(user_id, "pro", credits=50)."""

    def _subscribe(user_id: str, tier: str = "pro", credits: int = 100, status: str = "active", **extra):
        product_id = None if tier == "free" else f"prod_{tier}"
        row = {
            "user_id": user_id,
            "product_id": product_id,
            "status": status,
            "stripe_customer_id": f"cus_{user_id[:8]}",
            "subscription_id": f"sub_{user_id[:8]}" if product_id else None,
            "credits_total": credits,
            "credits_remaining": credits,
            "current_period_start": "2026-01-01T00:00:00+00:00",
            "current_period_end": "2026-02-01T00:00:00+00:00",
            **extra,
        }
        return fake_db.seed("user_subscriptions", [row])[0]

    return _subscribe


@pytest.fixture
def google():
    """Route all Google HTTP calls to an in-memory FakeGoogle."""
    fake = FakeGoogle()
    set_http_client(fake.client())
    return fake


@pytest.fixture
def connect_youtube(fake_db):
    """Give a user a YouTube integration row: connect_youtube(user_id, expires_in=-60)."""

    def _connect(user_id: str, expires_in: int = 3600, refresh_token: str | None = "refresh-token", **extra):
        row = {
            "user_id": user_id,
            "access_token": "access-token",
            "refresh_token": refresh_token,
            "expires_at": (utc_now() + timedelta(seconds=expires_in)).isoformat(),
            "scopes_granted": list(YOUTUBE_SCOPES),
            "is_connected": True,
            "revoked_at": None,
            **extra,
        }
        return fake_db.seed("youtube_integrations", [row])[0]

    return _connect
