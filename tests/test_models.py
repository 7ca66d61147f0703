# =============================================================================
# tests/test_models.py - Pydantic Model Tests
# =============================================================================
# Unit tests for the Pydantic models to ensure:
# - Valid data is accepted and parsed correctly
# - Invalid data raises ValidationError
# - Default values work as expected
#
# Run with: pytest tests/test_models.py -v
# =============================================================================

import pytest
from pydantic import ValidationError

from core.models import (
    ALL_ASPECT_RATIOS,
    FREE_TIER,
    AppSubscriptionStatus,
    ExperimentCreate,
    ExperimentUpdate,
    GenerateRequest,
    NotificationCreate,
    NotificationSeverity,
    Resolution,
    ThumbnailUpdate,
    TierConfig,
    TierName,
    VariantUpdate,
)


# =============================================================================
# GenerateRequest Tests
# =============================================================================

class TestGenerateRequest:
    """Tests for the GenerateRequest model."""

    def test_defaults(self):
        """Only the title is required."""
        request = GenerateRequest(title="My video")

        assert request.variations == 1
        assert request.aspect_ratio == "16:9"
        assert request.resolution == Resolution.R1K
        assert request.face_image_urls == []

    def test_title_is_stripped(self):
        assert GenerateRequest(title="  Padded  ").title == "Padded"

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            GenerateRequest(title="   ")

    @pytest.mark.parametrize("variations", [0, 5])
    def test_variations_out_of_range(self, variations):
        with pytest.raises(ValidationError):
            GenerateRequest(title="t", variations=variations)

    def test_unknown_resolution_rejected(self):
        with pytest.raises(ValidationError):
            GenerateRequest(title="t", resolution="8K")

    def test_custom_assets(self):
        assert GenerateRequest(title="t").has_custom_assets is False
        assert GenerateRequest(title="t", style="neon").has_custom_assets is True
        assert GenerateRequest(title="t", palette="sunset").has_custom_assets is True
        assert GenerateRequest(title="t", face_image_urls=["https://x/face.png"]).has_custom_assets is True


# =============================================================================
# Tier Tests
# =============================================================================

class TestTierConfig:
    """Tests for TierConfig.from_row()."""

    def test_from_row(self):
        row = {
            "tier_name": "advanced",
            "name": "Advanced",
            "price": 29.99,
            "credits_per_month": 300,
            "allowed_resolutions": ["1K", "2K"],
            "max_variations": 3,
            "can_create_custom": True,
        }

        tier = TierConfig.from_row(row, "prod_advanced")

        assert tier.tier_name == TierName.ADVANCED
        assert tier.product_id == "prod_advanced"
        assert tier.credits_per_month == 300
        assert tier.allowed_aspect_ratios == ALL_ASPECT_RATIOS
        assert tier.can_create_custom is True

    def test_missing_fields_use_defaults(self):
        tier = TierConfig.from_row({"tier_name": "starter"}, None)

        assert tier.name == "Starter"
        assert tier.allowed_resolutions == ["1K"]
        assert tier.max_variations == 1
        assert "9:16" in tier.allowed_aspect_ratios

    def test_free_tier(self):
        assert FREE_TIER.allowed_aspect_ratios == ["16:9"]
        assert FREE_TIER.can_create_custom is False
        assert FREE_TIER.product_id is None

    def test_status_values(self):
        assert AppSubscriptionStatus("past_due_locked") == AppSubscriptionStatus.PAST_DUE_LOCKED
        with pytest.raises(ValueError):
            AppSubscriptionStatus("past_due")


# =============================================================================
# Experiment / Thumbnail Tests
# =============================================================================

class TestExperimentModels:
    """Tests for experiment schemas."""

    def test_create(self):
        experiment = ExperimentCreate(video_id=" abc123 ", channel_id="UC1")

        assert experiment.video_id == "abc123"
        assert experiment.notes is None

    def test_blank_ids_rejected(self):
        with pytest.raises(ValidationError):
            ExperimentCreate(video_id="  ", channel_id="UC1")

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            ExperimentUpdate(status="archived")

    def test_variant_label(self):
        with pytest.raises(ValidationError):
            VariantUpdate(label="D")


class TestThumbnailUpdate:
    def test_exclude_unset(self):
        update = ThumbnailUpdate(liked=True)

        assert update.model_dump(exclude_unset=True) == {"liked": True}

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            ThumbnailUpdate(title="")


# =============================================================================
# Notification Tests
# =============================================================================

class TestNotificationCreate:
    """Tests for the NotificationCreate model."""

    def test_defaults(self):
        notification = NotificationCreate(user_id="u1", type="billing", title="Hi", body="There")

        assert notification.severity == NotificationSeverity.INFO
        assert notification.metadata == {}

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            NotificationCreate(user_id="u1", type="spam", title="Hi", body="There")

    def test_blank_body_rejected(self):
        with pytest.raises(ValidationError):
            NotificationCreate(user_id="u1", type="info", title="Hi", body="  ")
