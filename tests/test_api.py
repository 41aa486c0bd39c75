"""
API Backend Tests

Tests for the backing store endpoints, schemas, and core functionality.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient


def test_api_imports():
    """Test that all API modules can be imported without errors."""
    from api.main import app, create_app
    from api.core.config import Settings
    from api.core.security import create_access_token, decode_token
    from api.models.schemas import RecordCreate, SubscriptionBody, TokenResponse
    from api.models.store import RecordStore

    assert app is not None
    assert Settings is not None


def test_settings_defaults():
    """Test that settings have sensible defaults."""
    from api.core.config import Settings

    settings = Settings()
    assert settings.app_name == "Craftify Backing Store"
    assert settings.environment in ["development", "staging", "production"]
    assert settings.jwt_algorithm == "HS256"
    assert settings.jwt_access_token_expire_minutes > 0
    assert settings.default_page_size <= settings.max_page_size


def test_jwt_secret_validation_production():
    """Test that default JWT secret is rejected in production."""
    from api.core.config import Settings
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        Settings(
            environment="production",
            jwt_secret_key="CHANGE_ME_IN_PRODUCTION_USE_SECURE_SECRET_KEY"
        )


def test_jwt_secret_allowed_in_development():
    """Test that default JWT secret is allowed in development."""
    from api.core.config import Settings

    settings = Settings(
        environment="development",
        jwt_secret_key="CHANGE_ME_IN_PRODUCTION_USE_SECURE_SECRET_KEY"
    )
    assert settings.jwt_secret_key is not None


def test_allowed_origins_parsing():
    from api.core.config import Settings

    settings = Settings(allowed_origins="http://a.example, http://b.example")
    assert settings.allowed_origins == ["http://a.example", "http://b.example"]


def test_token_creation_and_decode():
    """Test JWT token creation and decoding."""
    from api.core.security import create_access_token, decode_token

    token = create_access_token("alice")

    assert isinstance(token, str)
    decoded = decode_token(token)
    assert decoded.sub == "alice"
    assert decoded.exp > decoded.iat


def test_expired_token_rejected():
    from fastapi import HTTPException

    from api.core.security import create_access_token, decode_token

    token = create_access_token("alice", expires_delta=timedelta(seconds=-10))
    with pytest.raises(HTTPException) as exc_info:
        decode_token(token)
    assert exc_info.value.status_code == 401


def test_format_alert():
    from api.models.store import format_alert

    body = format_alert(
        "Your report for %1$@ is now %2$@!",
        ["recipeName", "status"],
        {"recipeName": "Torch", "status": "Resolved"},
    )
    assert body == "Your report for Torch is now Resolved!"


# =============================================================================
# Endpoints
# =============================================================================

@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def auth(user_id: str) -> dict[str, str]:
    from api.core.security import create_access_token
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def admin() -> dict[str, str]:
    from api.core.config import settings
    return {"X-Admin-Token": settings.admin_token}


class TestHealthAndAuth:
    """Tests for health, root and identity endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Process-Time" in response.headers

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["endpoints"]["records"] == "/api/v1/records"

    def test_issue_token_and_me(self, client):
        response = client.post("/api/v1/auth/token", json={"user_id": "alice"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json() == {"user_id": "alice"}

    def test_invalid_user_id(self, client):
        response = client.post("/api/v1/auth/token", json={"user_id": "not valid!"})
        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"

    def test_requires_authentication(self, client):
        assert client.get("/api/v1/users/me").status_code in (401, 403)
        bad = client.get("/api/v1/users/me", headers={"Authorization": "Bearer garbage"})
        assert bad.status_code == 401


class TestRecords:
    """Tests for record query, create, update and delete."""

    def test_cursor_paging(self, client):
        for i in range(5):
            client.post(
                "/api/v1/records/Recipe",
                json={"record_name": str(i), "fields": {"name": f"Recipe {i}"}},
                headers=auth("admin"),
            )

        names, cursor, pages = [], None, 0
        while True:
            params = {"limit": 2}
            if cursor:
                params["cursor"] = cursor
            body = client.get("/api/v1/records/Recipe", params=params, headers=auth("alice")).json()
            names.extend(r["record_name"] for r in body["records"])
            cursor = body["cursor"]
            pages += 1
            if cursor is None:
                break

        assert names == ["0", "1", "2", "3", "4"]
        assert pages == 3

    def test_invalid_cursor(self, client):
        response = client.get(
            "/api/v1/records/Recipe", params={"cursor": "%%%"}, headers=auth("alice")
        )
        assert response.status_code == 400

    def test_field_and_creator_filters(self, client):
        client.post("/api/v1/records/PublicRecipeReport", json={"fields": {"status": "Pending"}}, headers=auth("alice"))
        client.post("/api/v1/records/PublicRecipeReport", json={"fields": {"status": "Resolved"}}, headers=auth("alice"))
        client.post("/api/v1/records/PublicRecipeReport", json={"fields": {"status": "Pending"}}, headers=auth("bob"))

        mine = client.get(
            "/api/v1/records/PublicRecipeReport",
            params={"created_by": "alice"},
            headers=auth("alice"),
        ).json()["records"]
        assert len(mine) == 2

        pending = client.get(
            "/api/v1/records/PublicRecipeReport",
            params={"created_by": "alice", "status": "Pending"},
            headers=auth("alice"),
        ).json()["records"]
        assert len(pending) == 1

    def test_duplicate_record_name(self, client):
        body = {"record_name": "1", "fields": {"name": "Torch"}}
        assert client.post("/api/v1/records/Recipe", json=body, headers=auth("admin")).status_code == 201
        assert client.post("/api/v1/records/Recipe", json=body, headers=auth("admin")).status_code == 409

    def test_update_requires_admin_token(self, client):
        created = client.post(
            "/api/v1/records/PublicRecipeReport",
            json={"fields": {"status": "Pending"}},
            headers=auth("alice"),
        ).json()
        path = f"/api/v1/records/PublicRecipeReport/{created['record_name']}"

        assert client.patch(path, json={"fields": {"status": "Resolved"}}).status_code == 403

        response = client.patch(path, json={"fields": {"status": "Resolved"}}, headers=admin())
        assert response.status_code == 200
        assert response.json()["fields"]["status"] == "Resolved"

        missing = client.patch(
            "/api/v1/records/PublicRecipeReport/nope", json={"fields": {}}, headers=admin()
        )
        assert missing.status_code == 404

    def test_delete(self, client):
        created = client.post(
            "/api/v1/records/PublicRecipeReport", json={"fields": {}}, headers=auth("alice")
        ).json()
        path = f"/api/v1/records/PublicRecipeReport/{created['record_name']}"

        assert client.delete(path, headers=auth("bob")).status_code == 403
        assert client.delete(path, headers=auth("alice")).status_code == 204
        assert client.delete(path, headers=auth("alice")).status_code == 404


class TestPrivateStore:
    """Tests for the per-user key-value store."""

    def test_values_are_per_user(self, client):
        assert client.get("/api/v1/private/favoriteRecipes", headers=auth("alice")).status_code == 404

        client.put("/api/v1/private/favoriteRecipes", json={"value": [1, 2]}, headers=auth("alice"))

        assert client.get("/api/v1/private/favoriteRecipes", headers=auth("alice")).json()["value"] == [1, 2]
        assert client.get("/api/v1/private/favoriteRecipes", headers=auth("bob")).status_code == 404

    def test_last_write_wins(self, client):
        client.put("/api/v1/private/recentSearches", json={"value": ["Torch"]}, headers=auth("alice"))
        client.put("/api/v1/private/recentSearches", json={"value": ["Chest"]}, headers=auth("alice"))
        assert client.get("/api/v1/private/recentSearches", headers=auth("alice")).json()["value"] == ["Chest"]

    def test_delete(self, client):
        client.put("/api/v1/private/recentSearches", json={"value": []}, headers=auth("alice"))
        assert client.delete("/api/v1/private/recentSearches", headers=auth("alice")).status_code == 204
        assert client.delete("/api/v1/private/recentSearches", headers=auth("alice")).status_code == 404


class TestSubscriptions:
    """Tests for query subscriptions and the notification outbox."""

    SUBSCRIPTION = {
        "record_type": "PublicRecipeReport",
        "predicate": {"created_by": "alice"},
        "fires_on": ["update"],
        "notification": {
            "title": "Craftify Update",
            "alert_body": "Your report for %1$@ is now %2$@!",
            "desired_keys": ["recipeName", "status"],
        },
    }

    def test_cannot_subscribe_to_other_users_records(self, client):
        response = client.put(
            "/api/v1/subscriptions/ReportStatusChanges_alice",
            json=self.SUBSCRIPTION,
            headers=auth("bob"),
        )
        assert response.status_code == 403

    def test_subscription_lifecycle(self, client):
        path = "/api/v1/subscriptions/ReportStatusChanges_alice"
        assert client.get(path, headers=auth("alice")).status_code == 404
        assert client.put(path, json=self.SUBSCRIPTION, headers=auth("alice")).status_code == 200

        listed = client.get("/api/v1/subscriptions", headers=auth("alice")).json()
        assert [s["subscription_id"] for s in listed] == ["ReportStatusChanges_alice"]
        # Not visible to other users
        assert client.get(path, headers=auth("bob")).status_code == 404

        assert client.delete(path, headers=auth("alice")).status_code == 204
        assert client.delete(path, headers=auth("alice")).status_code == 404

    def test_update_fires_notification(self, client):
        client.put(
            "/api/v1/subscriptions/ReportStatusChanges_alice",
            json=self.SUBSCRIPTION,
            headers=auth("alice"),
        )
        created = client.post(
            "/api/v1/records/PublicRecipeReport",
            json={"fields": {"recipeName": "Torch", "status": "Pending"}},
            headers=auth("alice"),
        ).json()

        # Creation alone does not fire an update subscription
        assert client.get("/api/v1/notifications", headers=auth("alice")).json() == []

        client.patch(
            f"/api/v1/records/PublicRecipeReport/{created['record_name']}",
            json={"fields": {"status": "Resolved"}},
            headers=admin(),
        )

        delivered = client.get("/api/v1/notifications", headers=auth("alice")).json()
        assert len(delivered) == 1
        assert delivered[0]["body"] == "Your report for Torch is now Resolved!"
        assert delivered[0]["fields"] == {"recipeName": "Torch", "status": "Resolved"}
        assert client.get("/api/v1/notifications", headers=auth("bob")).json() == []

    def test_subscription_without_creator_predicate_rejected(self, client):
        unscoped = dict(self.SUBSCRIPTION, predicate={})
        response = client.put(
            "/api/v1/subscriptions/AllReports", json=unscoped, headers=auth("mallory")
        )
        assert response.status_code == 403

        created = client.post(
            "/api/v1/records/PublicRecipeReport",
            json={"fields": {"recipeName": "Torch", "status": "Pending"}},
            headers=auth("alice"),
        ).json()
        client.patch(
            f"/api/v1/records/PublicRecipeReport/{created['record_name']}",
            json={"fields": {"status": "Resolved"}},
            headers=admin(),
        )
        assert client.get("/api/v1/notifications", headers=auth("mallory")).json() == []


def test_outbox_keeps_most_recent_notifications():
    from api.models.store import OUTBOX_LIMIT, RecordStore

    store = RecordStore()
    store.save_subscription(
        "alice",
        "ReportStatusChanges_alice",
        "PublicRecipeReport",
        {"created_by": "alice"},
        ["update"],
        {"title": "Craftify Update", "alert_body": "%1$@", "desired_keys": ["status"]},
    )
    record = store.create("PublicRecipeReport", {"status": "Pending"}, "alice")
    for i in range(OUTBOX_LIMIT + 5):
        store.update("PublicRecipeReport", record.record_name, {"status": f"Step {i}"})

    delivered = store.notifications_for("alice")
    assert len(delivered) == OUTBOX_LIMIT
    assert delivered[-1]["body"] == f"Step {OUTBOX_LIMIT + 4}"
    assert delivered[0]["body"] == "Step 5"
