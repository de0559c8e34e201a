"""Tests for the admin HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from useradmin.core import dependencies
from useradmin.core.auth import AuthManager
from useradmin.core.config import AppConfig
from useradmin.core.models import BASELINE_PLUGIN
from useradmin.core.storage import Storage
from useradmin.main import create_app

ADMIN = ("admin", "superuser-password")


@pytest.fixture
def app_config(tmp_path):
    config = AppConfig(base_dir=tmp_path, bcrypt_rounds=4, password_min_length=8, debug=True)
    auth = AuthManager(bcrypt_rounds=4)
    Storage(config.db_path).initialize(auth.hash_password(ADMIN[1]))
    return config


@pytest.fixture
def client(app_config):
    with TestClient(create_app(app_config)) as client:
        yield client


def create_editor(client, password="editor-password"):
    """Create a users-admin user and give them a known password."""
    response = client.post(
        "/admin/users",
        json={
            "username": "editor",
            "email": "editor@example.com",
            "plugins": [BASELINE_PLUGIN, "refinery_pages"],
            "roles": ["refinery"],
        },
        auth=ADMIN,
    )
    assert response.status_code == 201
    user_id = response.json()["user"]["id"]
    response = client.patch(
        f"/admin/users/{user_id}",
        json={"password": password, "password_confirmation": password},
        auth=ADMIN,
    )
    assert response.status_code == 200
    return user_id, ("editor", password)


class TestAuthentication:
    """Tests for resolving the acting user."""

    def test_requires_credentials(self, client):
        response = client.get("/admin/users")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Basic"

    def test_rejects_wrong_password(self, client):
        assert client.get("/admin/users", auth=("admin", "nope")).status_code == 401

    def test_uninitialized_site(self, tmp_path):
        app = create_app(AppConfig(base_dir=tmp_path / "empty", debug=True))
        with TestClient(app) as client:
            assert client.get("/admin/users", auth=ADMIN).status_code == 503

    def test_password_check_runs_in_threadpool(self, client, monkeypatch):
        calls = []
        original = dependencies.run_in_threadpool

        async def recording(func, *args):
            calls.append(func.__name__)
            return await original(func, *args)

        monkeypatch.setattr(dependencies, "run_in_threadpool", recording)

        assert client.get("/admin/users", auth=ADMIN).status_code == 200
        assert calls == ["authenticate"]

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestUserRoutes:
    """Tests for the users admin endpoints."""

    def test_list_users(self, client):
        response = client.get("/admin/users", auth=ADMIN)

        assert response.status_code == 200
        users = response.json()["users"]
        assert [u["username"] for u in users] == ["admin"]
        assert "password_hash" not in users[0]

    def test_new_form(self, client):
        form = client.get("/admin/users/new", auth=ADMIN).json()["form"]

        assert form["selected_plugin_names"] == []
        assert {"name": BASELINE_PLUGIN, "title": "Users"} in form["available_plugins"]

    def test_create_validation_error(self, client):
        response = client.post(
            "/admin/users",
            json={"username": "jane", "email": "not-an-email"},
            auth=ADMIN,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    def test_edit_form(self, client):
        user_id, _ = create_editor(client)

        data = client.get(f"/admin/users/{user_id}/edit", auth=ADMIN).json()
        assert data["user"]["username"] == "editor"
        assert data["form"]["selected_plugin_names"] == [BASELINE_PLUGIN, "refinery_pages"]

    def test_self_lockout_returns_conflict(self, client):
        user_id, editor_auth = create_editor(client)

        response = client.patch(
            f"/admin/users/{user_id}",
            json={"plugins": ["refinery_pages"]},
            auth=editor_auth,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "lockout_prevented"
        assert response.json()["state"] == "rejected"

    def test_editor_cannot_edit_superuser(self, client):
        _, editor_auth = create_editor(client)

        response = client.patch("/admin/users/1", json={"full_name": "X"}, auth=editor_auth)

        assert response.status_code == 403

    def test_update_and_reauthenticate(self, client):
        response = client.patch(
            "/admin/users/1",
            json={"password": "changed-password", "password_confirmation": "changed-password"},
            auth=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["reauthenticate"] is True
        assert client.get("/admin/users", auth=("admin", "changed-password")).status_code == 200

    def test_password_length_from_app_config(self, client):
        response = client.patch(
            "/admin/users/1",
            json={"password": "short12", "password_confirmation": "short12"},
            auth=ADMIN,
        )

        assert response.status_code == 422
        assert response.json()["errors"]["password"] == ["is too short (minimum is 8 characters)"]

    def test_unknown_user(self, client):
        assert client.patch("/admin/users/99", json={}, auth=ADMIN).status_code == 404

    def test_delete(self, client):
        user_id, _ = create_editor(client)

        assert client.delete(f"/admin/users/{user_id}", auth=ADMIN).status_code == 200
        assert client.delete("/admin/users/1", auth=ADMIN).status_code == 403


class TestAdminRoutes:
    """Tests for plugins, settings and audit endpoints."""

    def test_plugins(self, client):
        _, editor_auth = create_editor(client)

        plugins = client.get("/admin/plugins", auth=editor_auth).json()["plugins"]
        authorized = {p["name"] for p in plugins if p["authorized"]}
        assert authorized == {BASELINE_PLUGIN, "refinery_pages"}

    def test_settings_require_superuser(self, client):
        _, editor_auth = create_editor(client)

        assert client.get("/admin/settings", auth=editor_auth).status_code == 403

    def test_disable_role_assignment(self, client):
        response = client.put(
            "/admin/settings",
            json={"superuser_can_assign_roles": False},
            auth=ADMIN,
        )
        assert response.json() == {"superuser_can_assign_roles": False}

        response = client.post(
            "/admin/users",
            json={"username": "jane", "email": "jane@example.com", "roles": ["superuser"]},
            auth=ADMIN,
        )
        assert response.json()["user"]["roles"] == ["refinery"]

    def test_audit_log(self, client):
        create_editor(client)

        entries = client.get("/admin/audit-log", auth=ADMIN).json()["entries"]
        assert [e["event"] for e in entries] == ["user_update", "user_create"]
