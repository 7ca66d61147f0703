# =============================================================================
# tests/test_generation.py - Thumbnail Generation Tests
# =============================================================================
# Tier limits, credit checks, partial success and the first-thumbnail
# milestone. The image model is replaced by FakeImageGenerator.
# =============================================================================

import json

import pytest

from core.services import generation_service
from core.services.image_generator import build_thumbnail_prompt, size_for_aspect_ratio
from core.services.storage_service import THUMBNAILS_BUCKET
from tests.fakes import FakeImageGenerator, auth_headers


@pytest.fixture
def generator(monkeypatch):
    fake = FakeImageGenerator()
    monkeypatch.setattr(generation_service, "_image_generator", fake)
    return fake


def generate(client, user_id: str, **body):
    return client.post("/api/generate", json={"title": "I survived 100 days", **body}, headers=auth_headers(user_id))


# =============================================================================
# Tier Limits
# =============================================================================

class TestTierLimits:
    """Requests beyond the user's tier are rejected before any work."""

    def test_too_many_variations(self, client, fake_db, generator, user_id, subscribe):
        subscribe(user_id, tier="starter")

        response = generate(client, user_id, variations=3)

        assert response.status_code == 403
        assert response.json()["code"] == "TIER_LIMIT"
        assert generator.prompts == []
        assert fake_db.rows("thumbnails") == []

    def test_resolution_not_in_tier(self, client, generator, user_id, subscribe):
        subscribe(user_id, tier="starter")

        response = generate(client, user_id, resolution="4K")

        assert response.status_code == 403
        assert response.json()["code"] == "TIER_LIMIT"

    def test_aspect_ratio_not_in_tier(self, client, generator, user_id, subscribe):
        subscribe(user_id, tier="free", credits=10)

        response = generate(client, user_id, aspect_ratio="9:16")

        assert response.status_code == 403

    def test_custom_style_needs_paid_tier(self, client, generator, user_id, subscribe):
        subscribe(user_id, tier="free", credits=10)

        response = generate(client, user_id, style="neon-gaming")

        assert response.status_code == 403

    def test_locked_subscription_gets_free_limits(self, client, generator, user_id, subscribe):
        subscribe(user_id, tier="pro", status="past_due_locked")

        response = generate(client, user_id, variations=2)

        assert response.status_code == 403
        assert response.json()["code"] == "TIER_LIMIT"

    def test_blank_title_is_400(self, client, generator, user_id, subscribe):
        subscribe(user_id)

        response = client.post("/api/generate", json={"title": "   "}, headers=auth_headers(user_id))

        assert response.status_code == 400


# =============================================================================
# Credits
# =============================================================================

class TestCredits:
    """Credits are checked up front and charged for successes only."""

    def test_insufficient_credits(self, client, fake_db, generator, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=3)

        response = generate(client, user_id, variations=2, resolution="2K")

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "INSUFFICIENT_CREDITS"
        assert generator.prompts == []
        assert fake_db.rows("thumbnails") == []

    def test_charges_by_resolution(self, client, fake_db, generator, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=20)

        response = generate(client, user_id, variations=2, resolution="4K")

        assert response.status_code == 200
        data = response.json()
        assert data["credits_used"] == 8
        assert data["credits_remaining"] == 12
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 12

    def test_each_request_is_charged_with_its_own_key(self, client, fake_db, generator, user_id, subscribe):
        """A replayed Idempotency-Key header doesn't make a generation free."""
        # Arrange
        subscribe(user_id, tier="pro", credits=20)
        headers = {**auth_headers(user_id), "Idempotency-Key": "req-123"}

        # Act
        for _ in range(2):
            client.post("/api/generate", json={"title": "I survived 100 days"}, headers=headers)

        # Assert
        transactions = fake_db.rows("credit_transactions")
        assert len(transactions) == 2
        assert len({t["idempotency_key"] for t in transactions}) == 2
        assert "req-123" not in {t["idempotency_key"] for t in transactions}
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 18

    def test_user_without_subscription_gets_free_credits(self, client, fake_db, generator, user_id, seeded_tiers):
        """First generation creates the free subscription row, then charges it."""
        # Act
        response = generate(client, user_id)

        # Assert
        assert response.status_code == 200
        assert response.json()["credits_remaining"] == 9
        subscription = fake_db.rows("user_subscriptions")[0]
        assert subscription["status"] == "free"
        assert subscription["credits_total"] == 10
        assert subscription["credits_remaining"] == 9
        assert [name for name, _ in fake_db.rpc_calls] == ["decrement_credits_atomic"]


# =============================================================================
# Partial Success
# =============================================================================

class TestPartialSuccess:
    """A request fails only when every variation failed."""

    def test_all_succeed(self, client, fake_db, generator, user_id, subscribe):
        # Arrange
        subscribe(user_id, tier="pro", credits=20)

        # Act
        response = generate(client, user_id, variations=3)

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["total_succeeded"] == 3
        assert data["total_failed"] == 0
        thumbnails = fake_db.rows("thumbnails")
        assert len(thumbnails) == 3
        assert all(t["image_url"] for t in thumbnails)
        assert data["image_url"] == data["results"][0]["image_url"]
        assert len([key for key in fake_db.objects if key[0] == THUMBNAILS_BUCKET]) == 3

    def test_some_fail(self, client, fake_db, monkeypatch, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=20)
        monkeypatch.setattr(generation_service, "_image_generator", FakeImageGenerator(fail_on={2}))

        response = generate(client, user_id, variations=3)

        assert response.status_code == 200
        data = response.json()
        assert data["total_requested"] == 3
        assert data["total_succeeded"] == 2
        assert data["total_failed"] == 1
        assert [r["success"] for r in data["results"]] == [True, False, True]
        assert data["credits_used"] == 2
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 18
        assert len(fake_db.rows("thumbnails")) == 2

    def test_upload_failure_counts_as_failed_variation(self, client, fake_db, generator, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=20)
        fake_db.storage_fail = True

        response = generate(client, user_id)

        assert response.status_code == 500
        assert fake_db.rows("thumbnails") == []

    def test_all_fail(self, client, fake_db, monkeypatch, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=20)
        monkeypatch.setattr(generation_service, "_image_generator", FakeImageGenerator(fail_all=True))

        response = generate(client, user_id, variations=2)

        assert response.status_code == 500
        assert response.json()["code"] == "AI_SERVICE_ERROR"
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 20
        assert fake_db.rows("thumbnails") == []
        assert fake_db.rpc_calls == []


# =============================================================================
# Milestones
# =============================================================================

class TestFirstThumbnailMilestone:
    """The first-thumbnail notification is created once per user."""

    def test_created_once(self, client, fake_db, generator, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=20)

        generate(client, user_id)
        generate(client, user_id)

        notifications = fake_db.rows("notifications")
        assert len(notifications) == 1
        assert notifications[0]["metadata"]["milestone"] == "first_thumbnail"
        assert notifications[0]["type"] == "reward"

    def test_notification_failure_does_not_fail_generation(self, client, fake_db, generator, user_id, subscribe):
        subscribe(user_id, tier="pro", credits=20)
        fake_db.failing_tables.add("notifications")

        response = generate(client, user_id)

        assert response.status_code == 200


# =============================================================================
# Prompt
# =============================================================================

class TestPrompt:
    """build_thumbnail_prompt"""

    def test_includes_title_and_options(self):
        prompt = build_thumbnail_prompt(
            title="I survived 100 days",
            aspect_ratio="16:9",
            resolution="2K",
            emotion="shocked",
            custom_style="Neon lighting",
            face_reference_count=1,
        )

        assert "I survived 100 days" in prompt
        assert "16:9" in prompt
        assert "shocked" in prompt
        assert "Neon lighting" in prompt

    def test_colon_splits_title_and_subtext(self):
        prompt = json.loads(build_thumbnail_prompt("Day 100: The End", "16:9", "1K"))

        assert prompt["title"]["main_title"] == "Day 100"
        assert prompt["title"]["subtext"] == "The End"

    @pytest.mark.parametrize("aspect_ratio,size", [
        ("16:9", "1536x1024"),
        ("9:16", "1024x1536"),
        ("1:1", "1024x1024"),
        ("bogus", "1536x1024"),
    ])
    def test_canvas_size(self, aspect_ratio, size):
        assert size_for_aspect_ratio(aspect_ratio) == size
