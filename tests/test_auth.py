# =============================================================================
# tests/test_auth.py - Authentication Tests
# =============================================================================
# Session validation for every user-facing route:
# - No, invalid or expired tokens answer 401
# - The 401 happens before any database access
# - The auth cookie works when no Authorization header is sent
# =============================================================================

import time
import uuid

import pytest
from jose import jwt

from tests.fakes import TEST_JWT_SECRET, auth_headers, make_access_token

THUMBNAIL_ID = str(uuid.uuid4())

PROTECTED_ROUTES = [
    ("GET", "/api/auth/verify", None),
    ("GET", "/api/thumbnails", None),
    ("GET", f"/api/thumbnails/{THUMBNAIL_ID}", None),
    ("PATCH", f"/api/thumbnails/{THUMBNAIL_ID}", {"liked": True}),
    ("DELETE", f"/api/thumbnails/{THUMBNAIL_ID}", None),
    ("POST", "/api/generate", {"title": "My video"}),
    ("GET", "/api/experiments", None),
    ("POST", "/api/experiments", {"video_id": "v1", "channel_id": "c1"}),
    ("GET", "/api/youtube/status", None),
    ("GET", "/api/youtube/videos", None),
    ("GET", "/api/youtube/connect/authorize", None),
    ("GET", "/api/subscriptions", None),
    ("GET", "/api/account/overview", None),
    ("GET", "/api/tasks/some-task-id", None),
]


class TestMissingOrInvalidToken:
    """Requests without a valid session never reach a handler."""

    @pytest.mark.parametrize("method,path,body", PROTECTED_ROUTES)
    def test_missing_token_is_401_without_db_access(self, client, fake_db, method, path, body):
        # Act
        response = client.request(method, path, json=body)

        # Assert
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"
        assert fake_db.access_log == []

    @pytest.mark.parametrize("method,path,body", PROTECTED_ROUTES)
    def test_garbage_token_is_401_without_db_access(self, client, fake_db, method, path, body):
        response = client.request(method, path, json=body, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert fake_db.access_log == []

    def test_expired_token_is_401(self, client, user_id):
        token = make_access_token(user_id, expires_in=-60)

        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Token has expired"

    def test_wrong_signature_is_401(self, client, user_id):
        token = jwt.encode(
            {"sub": user_id, "aud": "authenticated", "exp": int(time.time()) + 60},
            "some-other-secret",
            algorithm="HS256",
        )

        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_wrong_audience_is_401(self, client, user_id):
        token = jwt.encode(
            {"sub": user_id, "aud": "anon", "exp": int(time.time()) + 60},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )

        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_non_uuid_subject_is_401(self, client):
        token = jwt.encode(
            {"sub": "not-a-uuid", "aud": "authenticated", "exp": int(time.time()) + 60},
            TEST_JWT_SECRET,
            algorithm="HS256",
        )

        response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestValidToken:
    """A valid Supabase token identifies the user."""

    def test_verify_returns_user(self, client, user_id):
        response = client.get("/api/auth/verify", headers=auth_headers(user_id))

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["user_id"] == user_id
        assert data["email"] == "creator@example.com"

    def test_cookie_is_accepted_without_header(self, client, user_id):
        client.cookies.set("sb-access-token", make_access_token(user_id))

        response = client.get("/api/auth/verify")

        assert response.status_code == 200
        assert response.json()["user_id"] == user_id
