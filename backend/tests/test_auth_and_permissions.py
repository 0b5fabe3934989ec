"""
test_auth_and_permissions.py — Role permissions, team admin and JWT login.
"""

import pytest

from steelworks.services.permissions import (
    ROLE_PERMISSIONS,
    ROLES,
    can_edit,
    get_permissions,
    has_any_permission,
    has_permission,
)


# ===========================================================================
# Class 1: Permission table
# ===========================================================================

class TestPermissions:

    def test_every_role_has_an_entry(self):
        assert set(ROLES) == set(ROLE_PERMISSIONS)

    @pytest.mark.parametrize("role, permission, allowed", [
        ("ADMIN", "settings:admin", True),
        ("ADMIN", "audit:read", True),
        ("ESTIMATOR", "quotes:edit", True),
        ("ESTIMATOR", "products:edit", False),
        ("PRODUCTION_MANAGER", "products:edit", True),
        ("PRODUCTION_MANAGER", "quotes:edit", False),
        ("DESIGNER", "reports:read", False),
        ("VIEWER", "quotes:read", True),
        ("VIEWER", "quotes:edit", False),
        ("NOBODY", "quotes:read", False),
    ])
    def test_has_permission(self, role, permission, allowed):
        assert has_permission(role, permission) is allowed

    def test_has_any_permission(self):
        assert has_any_permission("DESIGNER", ["settings:admin", "products:edit"]) is True
        assert has_any_permission("VIEWER", ["settings:admin", "products:edit"]) is False

    def test_get_permissions_sorted(self):
        perms = get_permissions("VIEWER")
        assert perms == sorted(perms)
        assert "team:read" in perms
        assert get_permissions("NOBODY") == []

    def test_can_edit(self):
        assert can_edit("ESTIMATOR") is True
        assert can_edit("VIEWER") is False

    def test_only_admin_reads_audit(self):
        assert [r for r in ROLES if has_permission(r, "audit:read")] == ["ADMIN"]


# ===========================================================================
# Class 2: Team administration
# ===========================================================================

class TestUsers:

    def test_admin_creates_user(self, client):
        resp = client.post("/api/users", json={
            "email": " New.Estimator@Steelworks.test ", "password": "s3cure-pass",
            "full_name": "New Estimator", "role": "ESTIMATOR",
        })
        assert resp.status_code == 201
        body = resp.json()
        assert body["email"] == "new.estimator@steelworks.test"
        assert body["role"] == "ESTIMATOR"
        assert "hashed_password" not in body

    @pytest.mark.parametrize("body", [
        {"email": "not-an-email", "password": "long-enough"},
        {"email": "short@steelworks.test", "password": "short"},
        {"email": "role@steelworks.test", "password": "long-enough", "role": "OWNER"},
        {"email": "admin@steelworks.test", "password": "long-enough"},
    ])
    def test_invalid_user_rejected(self, client, body):
        resp = client.post("/api/users", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_INVALID"

    def test_estimator_cannot_manage_team(self, client, act_as):
        act_as("ESTIMATOR")
        resp = client.post("/api/users", json={"email": "x@steelworks.test", "password": "long-enough"})
        assert resp.status_code == 403

    def test_list_users(self, client):
        emails = [u["email"] for u in client.get("/api/users").json()]
        assert "admin@steelworks.test" in emails
        assert emails == sorted(emails)


# ===========================================================================
# Class 3: Login and bearer tokens
# ===========================================================================

class TestLogin:

    @pytest.fixture
    def real_auth(self, client):
        """Drop the auth override so requests go through the JWT check."""
        from steelworks.api.deps import get_current_user
        from steelworks.main import app

        client.post("/api/users", json={
            "email": "pm@steelworks.test", "password": "correct-horse",
            "full_name": "Pat Manager", "role": "PRODUCTION_MANAGER",
        })
        app.dependency_overrides.pop(get_current_user, None)
        return client

    def test_login_and_me(self, real_auth):
        resp = real_auth.post("/api/auth/login",
                              json={"email": "PM@steelworks.test", "password": "correct-horse"})
        assert resp.status_code == 200
        token = resp.json()
        assert token["token_type"] == "bearer"
        assert token["role"] == "PRODUCTION_MANAGER"

        me = real_auth.get("/api/auth/me",
                           headers={"Authorization": f"Bearer {token['access_token']}"})
        assert me.status_code == 200
        assert me.json()["email"] == "pm@steelworks.test"
        assert "products:edit" in me.json()["permissions"]

    def test_wrong_password(self, real_auth):
        resp = real_auth.post("/api/auth/login",
                              json={"email": "pm@steelworks.test", "password": "wrong-horse"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "UNAUTHORIZED", "message": "Incorrect email or password"}

    def test_missing_token(self, real_auth):
        resp = real_auth.get("/api/quotes")
        assert resp.status_code == 401
        assert resp.json()["error"] == "UNAUTHORIZED"

    def test_garbage_token(self, real_auth):
        resp = real_auth.get("/api/quotes", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid token"


class TestAppShell:

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "active"
        assert body["db_configured"] is False

    def test_request_id_echoed(self, client):
        resp = client.get("/api/quotes", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
        assert "X-Process-Time" in resp.headers

    def test_unknown_route_uses_error_shape(self, client):
        resp = client.get("/api/nowhere")
        assert resp.status_code == 404
        assert resp.json() == {"error": "NOT_FOUND", "message": "Not Found"}

    def test_malformed_body_is_400(self, client):
        resp = client.post("/api/quotes", content="{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_INVALID"
