# =============================================================================
# tests/test_experiments.py - Experiment Tests
# =============================================================================
# CRUD with ownership checks, and A/B/C variant generation where some
# variants may fail.
# =============================================================================

import uuid

import pytest

from core.services import generation_service
from core.services.storage_service import THUMBNAILS_BUCKET
from tests.fakes import FakeImageGenerator, auth_headers

VARIANT_REQUEST = {
    "title": "I tried every fast food burger",
    "description": "Ranking 20 burgers",
    "tags": ["food", "ranking"],
}


@pytest.fixture
def experiment(fake_db, user_id):
    return fake_db.seed("experiments", [{
        "user_id": user_id,
        "video_id": "vid123",
        "channel_id": "UC123",
        "status": "draft",
    }])[0]


def use_generator(monkeypatch, generator: FakeImageGenerator) -> FakeImageGenerator:
    monkeypatch.setattr(generation_service, "_image_generator", generator)
    return generator


# =============================================================================
# CRUD
# =============================================================================

class TestCreateExperiment:
    """POST /api/experiments"""

    def test_creates_draft(self, client, fake_db, user_id):
        response = client.post(
            "/api/experiments",
            json={"video_id": "vid123", "channel_id": "UC123", "notes": "Face vs no face"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 201
        experiment = response.json()["experiment"]
        assert experiment["status"] == "draft"
        assert experiment["user_id"] == user_id
        assert len(fake_db.rows("experiments")) == 1

    @pytest.mark.parametrize("body", [
        {"channel_id": "UC123"},
        {"video_id": "vid123"},
        {"video_id": "   ", "channel_id": "UC123"},
    ])
    def test_missing_fields_are_400(self, client, fake_db, user_id, body):
        response = client.post("/api/experiments", json=body, headers=auth_headers(user_id))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert fake_db.rows("experiments") == []


class TestReadExperiments:
    """GET /api/experiments and /api/experiments/{id}"""

    def test_list_includes_variants_and_result(self, client, fake_db, user_id, experiment):
        fake_db.seed("experiment_variants", [
            {"experiment_id": experiment["id"], "label": "B"},
            {"experiment_id": experiment["id"], "label": "A"},
        ])
        fake_db.seed("experiment_results", [{"experiment_id": experiment["id"], "winner_variant_label": "A"}])

        response = client.get("/api/experiments", headers=auth_headers(user_id))

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        listed = data["experiments"][0]
        assert [v["label"] for v in listed["variants"]] == ["A", "B"]
        assert listed["result"]["winner_variant_label"] == "A"
        assert "errors" not in listed

    def test_list_reports_failed_branch(self, client, fake_db, user_id, experiment):
        fake_db.failing_tables.add("experiment_results")

        response = client.get("/api/experiments", headers=auth_headers(user_id))

        assert response.status_code == 200
        listed = response.json()["experiments"][0]
        assert listed["result"] is None
        assert listed["errors"] == ["result"]

    def test_list_filters_by_status(self, client, fake_db, user_id, experiment):
        fake_db.seed("experiments", [{
            "user_id": user_id, "video_id": "v2", "channel_id": "UC123", "status": "running",
        }])

        response = client.get("/api/experiments?status=running", headers=auth_headers(user_id))

        assert [e["video_id"] for e in response.json()["experiments"]] == ["v2"]

    def test_list_rejects_unknown_status(self, client, user_id):
        response = client.get("/api/experiments?status=bogus", headers=auth_headers(user_id))

        assert response.status_code == 400

    def test_get_own_experiment(self, client, user_id, experiment):
        response = client.get(f"/api/experiments/{experiment['id']}", headers=auth_headers(user_id))

        assert response.status_code == 200
        body = response.json()["experiment"]
        assert body["id"] == experiment["id"]
        assert body["variants"] == []
        assert body["result"] is None

    def test_other_users_experiment_is_404(self, client, other_user_id, experiment):
        response = client.get(f"/api/experiments/{experiment['id']}", headers=auth_headers(other_user_id))

        assert response.status_code == 404


class TestUpdateAndDeleteExperiment:
    """PATCH / DELETE /api/experiments/{id}"""

    def test_update_status(self, client, fake_db, user_id, experiment):
        response = client.patch(
            f"/api/experiments/{experiment['id']}",
            json={"status": "running"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 200
        assert fake_db.rows("experiments")[0]["status"] == "running"

    def test_invalid_status_is_400(self, client, fake_db, user_id, experiment):
        response = client.patch(
            f"/api/experiments/{experiment['id']}",
            json={"status": "finished"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 400
        assert fake_db.rows("experiments")[0]["status"] == "draft"

    def test_empty_update_is_400(self, client, user_id, experiment):
        response = client.patch(f"/api/experiments/{experiment['id']}", json={}, headers=auth_headers(user_id))

        assert response.status_code == 400

    def test_update_by_other_user_is_404(self, client, fake_db, other_user_id, experiment):
        response = client.patch(
            f"/api/experiments/{experiment['id']}",
            json={"status": "running"},
            headers=auth_headers(other_user_id),
        )

        assert response.status_code == 404
        assert fake_db.rows("experiments")[0]["status"] == "draft"

    def test_delete(self, client, fake_db, user_id, experiment):
        response = client.delete(f"/api/experiments/{experiment['id']}", headers=auth_headers(user_id))

        assert response.status_code == 200
        assert response.json() == {"success": True, "experiment_id": experiment["id"]}
        assert fake_db.rows("experiments") == []

    def test_delete_by_other_user_is_404(self, client, fake_db, other_user_id, experiment):
        response = client.delete(f"/api/experiments/{experiment['id']}", headers=auth_headers(other_user_id))

        assert response.status_code == 404
        assert len(fake_db.rows("experiments")) == 1


# =============================================================================
# Variants
# =============================================================================

class TestGenerateVariants:
    """POST /api/experiments/{id}/variants"""

    def test_all_three_succeed(self, client, fake_db, monkeypatch, user_id, subscribe, experiment):
        # Arrange
        subscribe(user_id, tier="pro", credits=50)
        use_generator(monkeypatch, FakeImageGenerator())

        # Act
        response = client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(user_id),
        )

        # Assert
        assert response.status_code == 200
        assert response.json()["count"] == 3
        labels = sorted(v["label"] for v in fake_db.rows("experiment_variants"))
        assert labels == ["A", "B", "C"]
        assert fake_db.rows("experiments")[0]["status"] == "ready_for_studio"
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 47

    def test_partial_success_keeps_successful_variants(
        self, client, fake_db, monkeypatch, user_id, subscribe, experiment
    ):
        subscribe(user_id, tier="pro", credits=50)
        use_generator(monkeypatch, FakeImageGenerator(fail_on={2}))

        response = client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(user_id),
        )

        assert response.status_code == 200
        assert response.json()["count"] == 2
        assert sorted(v["label"] for v in fake_db.rows("experiment_variants")) == ["A", "C"]
        assert fake_db.rows("experiments")[0]["status"] == "draft"
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 48

    def test_all_failing_is_500(self, client, fake_db, monkeypatch, user_id, subscribe, experiment):
        subscribe(user_id, tier="pro", credits=50)
        use_generator(monkeypatch, FakeImageGenerator(fail_all=True))

        response = client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(user_id),
        )

        assert response.status_code == 500
        assert response.json()["code"] == "AI_SERVICE_ERROR"
        assert fake_db.rows("experiment_variants") == []
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 50

    def test_unsaved_variants_are_discarded_and_refunded(
        self, client, fake_db, monkeypatch, user_id, subscribe, experiment
    ):
        """Thumbnails whose variant row can't be written don't cost credits."""
        # Arrange
        subscribe(user_id, tier="pro", credits=50)
        generator = use_generator(monkeypatch, FakeImageGenerator())
        fake_db.failing_tables.add("experiment_variants")

        # Act
        response = client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(user_id),
        )

        # Assert
        assert response.status_code == 500
        assert len(generator.prompts) == 3
        assert fake_db.rows("user_subscriptions")[0]["credits_remaining"] == 50
        assert fake_db.rows("thumbnails") == []
        assert [key for key in fake_db.objects if key[0] == THUMBNAILS_BUCKET] == []
        refunds = [t for t in fake_db.rows("credit_transactions") if t["type"] == "refund"]
        assert len(refunds) == 3
        assert all(t["amount"] == 1 for t in refunds)

    def test_variant_prompts_differ(self, client, monkeypatch, user_id, subscribe, experiment):
        subscribe(user_id, tier="pro", credits=50)
        generator = use_generator(monkeypatch, FakeImageGenerator())

        client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(user_id),
        )

        assert len(set(generator.prompts)) == 3

    def test_insufficient_credits_is_403(self, client, fake_db, monkeypatch, user_id, subscribe, experiment):
        subscribe(user_id, tier="pro", credits=0)
        generator = use_generator(monkeypatch, FakeImageGenerator())

        response = client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(user_id),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_CREDITS"
        assert generator.prompts == []

    def test_other_users_experiment_is_404(self, client, monkeypatch, other_user_id, subscribe, experiment):
        subscribe(other_user_id, tier="pro", credits=50)
        generator = use_generator(monkeypatch, FakeImageGenerator())

        response = client.post(
            f"/api/experiments/{experiment['id']}/variants",
            json=VARIANT_REQUEST,
            headers=auth_headers(other_user_id),
        )

        assert response.status_code == 404
        assert generator.prompts == []


class TestUpdateVariant:
    """PATCH /api/experiments/{id}/variants"""

    def test_updates_variant_by_label(self, client, fake_db, user_id, experiment):
        fake_db.seed("experiment_variants", [{"experiment_id": experiment["id"], "label": "B", "title_text": "old"}])

        response = client.patch(
            f"/api/experiments/{experiment['id']}/variants",
            json={"label": "B", "title_text": "new"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 200
        assert response.json()["variant"]["title_text"] == "new"

    def test_missing_variant_is_404(self, client, user_id, experiment):
        response = client.patch(
            f"/api/experiments/{experiment['id']}/variants",
            json={"label": "C", "title_text": "new"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 404

    def test_unknown_experiment_is_404(self, client, user_id):
        response = client.patch(
            f"/api/experiments/{uuid.uuid4()}/variants",
            json={"label": "A", "title_text": "new"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 404
