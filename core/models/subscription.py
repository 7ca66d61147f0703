# =============================================================================
# core/models/subscription.py - Subscription and Tier Schemas
# =============================================================================
# Tier configuration and the app-level subscription status derived from
# Stripe. A tier gates credits, resolutions, aspect ratios, variation counts
# and custom asset usage.
# =============================================================================

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TierName(str, Enum):
    """Subscription plan levels, lowest first."""
    FREE = "free"
    STARTER = "starter"
    ADVANCED = "advanced"
    PRO = "pro"


class Resolution(str, Enum):
    """Output resolutions; each costs a different number of credits."""
    R1K = "1K"
    R2K = "2K"
    R4K = "4K"


class AppSubscriptionStatus(str, Enum):
    """
    App-level subscription status derived from the Stripe subscription.

    - active: paid features available
    - paused_until_period_end: paused, paid features until the period ends
    - paused_free: paused into a new billing period, treated as free
    - past_due_locked: payment problem, paid features blocked
    - cancelled: subscription ended
    - free: never subscribed
    """
    FREE = "free"
    ACTIVE = "active"
    PAUSED_UNTIL_PERIOD_END = "paused_until_period_end"
    PAUSED_FREE = "paused_free"
    PAST_DUE_LOCKED = "past_due_locked"
    CANCELLED = "cancelled"


RESOLUTION_CREDITS: dict[str, int] = {
    Resolution.R1K.value: 1,
    Resolution.R2K.value: 2,
    Resolution.R4K.value: 4,
}

ALL_ASPECT_RATIOS = ["1:1", "3:2", "2:3", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"]

ASPECT_RATIOS_BY_TIER: dict[str, list[str]] = {
    TierName.FREE.value: ["16:9"],
    TierName.STARTER.value: ["1:1", "3:2", "3:4", "9:16", "16:9"],
    TierName.ADVANCED.value: ALL_ASPECT_RATIOS,
    TierName.PRO.value: ALL_ASPECT_RATIOS,
}


class TierConfig(BaseModel):
    """
    Limits and allowances for one subscription tier.

    Loaded from the subscription_tiers table; `allowed_aspect_ratios` is
    filled from ASPECT_RATIOS_BY_TIER.
    """
    tier_name: TierName
    name: str
    product_id: str | None = None
    price: float = 0
    credits_per_month: int = Field(default=0, ge=0)
    allowed_resolutions: list[str] = Field(default_factory=lambda: ["1K"])
    allowed_aspect_ratios: list[str] = Field(default_factory=lambda: ["16:9"])
    has_watermark: bool = True
    has_enhance: bool = False
    persistent_storage: bool = False
    storage_retention_days: int | None = 30
    priority_generation: bool = False
    early_access: bool = False
    max_variations: int = Field(default=1, ge=1)
    can_create_custom: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any], product_id: str | None) -> "TierConfig":
        """Build a TierConfig from a subscription_tiers row."""
        tier_name = row.get("tier_name", TierName.FREE.value)
        return cls(
            tier_name=tier_name,
            name=row.get("name") or str(tier_name).capitalize(),
            product_id=product_id,
            price=row.get("price") or 0,
            credits_per_month=row.get("credits_per_month") or 0,
            allowed_resolutions=row.get("allowed_resolutions") or ["1K"],
            allowed_aspect_ratios=ASPECT_RATIOS_BY_TIER.get(tier_name, ["16:9"]),
            has_watermark=row.get("has_watermark", True),
            has_enhance=row.get("has_enhance", False),
            persistent_storage=row.get("persistent_storage", False),
            storage_retention_days=row.get("storage_retention_days"),
            priority_generation=row.get("priority_generation", False),
            early_access=row.get("early_access", False),
            max_variations=row.get("max_variations") or 1,
            can_create_custom=row.get("can_create_custom", False),
        )


FREE_TIER = TierConfig(
    tier_name=TierName.FREE,
    name="Free",
    credits_per_month=10,
    allowed_resolutions=["1K"],
    allowed_aspect_ratios=ASPECT_RATIOS_BY_TIER[TierName.FREE.value],
    has_watermark=True,
    storage_retention_days=30,
    max_variations=1,
    can_create_custom=False,
)


class SubscriptionSummary(BaseModel):
    """Response for GET /subscriptions."""
    status: AppSubscriptionStatus | None = None
    stripe_status: str | None = None
    tier: TierConfig
    access_tier: TierName
    credits_total: int = 0
    credits_remaining: int = 0
    current_period_start: str | None = None
    current_period_end: str | None = None
    blocked: bool = False


# =============================================================================
# Billing Requests
# =============================================================================

class SubscriptionAction(str, Enum):
    """Actions accepted by POST /subscriptions."""
    PAUSE = "pause"
    RESUME = "resume"
    MANAGE_CANCEL = "manage_cancel"
    MANAGE_UPDATE = "manage_update"


class PortalFlow(str, Enum):
    """Customer Portal deep links."""
    CANCEL = "cancel"
    UPDATE = "update"


class SubscriptionActionRequest(BaseModel):
    """Body of POST /subscriptions; no action just ensures the free row exists."""
    action: SubscriptionAction | None = None


class CheckoutRequest(BaseModel):
    """Body of POST /create-checkout."""
    price_id: str = Field(..., alias="priceId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("price_id")
    @classmethod
    def price_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Price ID is required")
        return value
