"""Tests for the users admin actions."""

import pytest

from useradmin.core.errors import ErrorKind
from useradmin.core.models import BASELINE_PLUGIN, Role, SiteSettings, User
from useradmin.core.schemas import UserCreateRequest, UserUpdateRequest
from useradmin.core.storage import StorageError
from useradmin.core.users import UpdateState, UserAdminService, inviting_name


def events(audit):
    return [entry["event"] for entry in audit.read_recent()]


class TestIndexAndForms:
    """Tests for listing and form options."""

    def test_index_ordered_by_username(self, service, superuser, editor, author):
        result = service.index(superuser)

        assert result.ok is True
        assert [u.username for u in result.users] == ["admin", "author", "editor"]

    def test_index_requires_users_admin(self, service, author):
        result = service.index(author)

        assert result.ok is False
        assert result.kind == ErrorKind.UNAUTHORIZED

    def test_new_form(self, service, superuser):
        result = service.new(superuser)
        form = result.form

        assert result.ok is True
        assert form["selected_plugin_names"] == []
        titles = [p["title"] for p in form["available_plugins"]]
        assert titles == sorted(titles)
        assert "refinery_core" not in [p["name"] for p in form["available_plugins"]]
        assert [r["name"] for r in form["available_roles"]] == ["refinery", "superuser"]

    def test_edit_form_selects_current_plugins(self, service, editor):
        result = service.edit(editor, editor.id)

        assert result.ok is True
        assert result.form["selected_plugin_names"] == [BASELINE_PLUGIN, "refinery_pages"]

    def test_edit_other_user_unauthorized(self, service, editor, author, audit):
        result = service.edit(editor, author.id)

        assert result.kind == ErrorKind.UNAUTHORIZED
        assert events(audit) == ["user_unauthorized"]

    def test_edit_missing_user(self, service, superuser):
        assert service.edit(superuser, 999).kind == ErrorKind.NOT_FOUND


class TestCreate:
    """Tests for creating users."""

    def test_superuser_assigns_selected_roles(self, service, superuser, store):
        params = UserCreateRequest(
            username="jane",
            email="jane@example.com",
            plugins=["refinery_pages"],
            roles=["Refinery", "superuser"],
        )
        result = service.create(superuser, params)

        assert result.ok is True
        saved = store.get(result.user.id)
        assert saved.roles == [Role.REFINERY, Role.SUPERUSER]
        assert saved.plugins == ["refinery_pages"]
        assert saved.password_hash.startswith("$2b$")
        assert "jane@example.com" in result.message

    def test_without_role_assignment_gets_baseline_role(self, service, editor, store):
        params = UserCreateRequest(username="jane", email="jane@example.com", roles=["superuser"])
        result = service.create(editor, params)

        assert result.ok is True
        assert store.get(result.user.id).roles == [Role.REFINERY]

    def test_role_assignment_disabled_by_settings(self, store, registry, auth, superuser):
        service = UserAdminService(
            store, registry, SiteSettings(superuser_can_assign_roles=False), auth
        )
        params = UserCreateRequest(username="jane", email="jane@example.com", roles=["superuser"])

        result = service.create(superuser, params)

        assert result.user.roles == [Role.REFINERY]

    def test_baseline_role_added_through_user(self, service, editor, monkeypatch):
        added = []
        original = User.add_role

        def recording_add_role(user, role):
            added.append(role)
            original(user, role)

        monkeypatch.setattr(User, "add_role", recording_add_role)

        service.create(editor, UserCreateRequest(username="jane", email="jane@example.com"))

        assert added == [Role.REFINERY]

    def test_add_role_is_idempotent(self):
        user = User(username="jane", email="jane@example.com", roles=[Role.REFINERY])

        user.add_role(Role.REFINERY)
        user.add_role(Role.SUPERUSER)

        assert user.roles == [Role.REFINERY, Role.SUPERUSER]

    def test_invites_user(self, service, store, hooks, audit, auth):
        inviter = store.save(store.get(1).model_copy(update={"username": "jane.doe"}))
        invited = []
        hooks.register("user_invited", lambda payload: invited.append(payload["inviting_user"]))

        result = service.create(inviter, UserCreateRequest(username="bob", email="bob@example.com"))

        assert result.user.inviting_user == "Jane.doe"
        assert invited == ["Jane.doe"]
        assert events(audit) == ["user_create"]

    def test_duplicate_username(self, service, superuser, editor):
        params = UserCreateRequest(username="Editor", email="other@example.com")
        result = service.create(superuser, params)

        assert result.kind == ErrorKind.VALIDATION_FAILED
        assert result.errors == {"username": ["has already been taken"]}

    def test_invalid_email(self, service, superuser):
        result = service.create(superuser, UserCreateRequest(username="jane", email="jane"))

        assert result.kind == ErrorKind.VALIDATION_FAILED
        assert "email" in result.errors

    def test_unknown_role_and_plugin(self, service, superuser):
        params = UserCreateRequest(username="jane", email="jane@example.com", roles=["owner"])
        assert service.create(superuser, params).kind == ErrorKind.UNKNOWN_ROLE

        params = UserCreateRequest(username="jane", email="jane@example.com", plugins=["nope"])
        assert service.create(superuser, params).kind == ErrorKind.UNKNOWN_PLUGIN

    def test_requires_users_admin(self, service, author):
        result = service.create(author, UserCreateRequest(username="jane", email="jane@example.com"))

        assert result.kind == ErrorKind.UNAUTHORIZED

    def test_inviting_name(self):
        assert inviting_name("jane doe") == "Jane Doe"
        assert inviting_name("admin") == "Admin"


class TestUpdate:
    """Tests for the update flow."""

    def test_self_lockout_prevented(self, service, store, editor, audit):
        params = UserUpdateRequest(plugins=["refinery_pages"], roles=["refinery"])
        result = service.update(editor, editor.id, params)

        assert result.ok is False
        assert result.kind == ErrorKind.LOCKOUT_PREVENTED
        assert result.state == UpdateState.REJECTED
        assert store.get(editor.id).plugins == [BASELINE_PLUGIN, "refinery_pages"]
        assert events(audit) == ["user_lockout_prevented"]

    def test_superuser_cannot_drop_own_refinery_role(self, service, superuser):
        params = UserUpdateRequest(plugins=[BASELINE_PLUGIN], roles=["superuser"])
        result = service.update(superuser, superuser.id, params)

        assert result.kind == ErrorKind.LOCKOUT_PREVENTED

    def test_self_edit_keeping_baseline(self, service, store, editor):
        params = UserUpdateRequest(plugins=[BASELINE_PLUGIN], full_name="Ed")
        result = service.update(editor, editor.id, params)

        assert result.ok is True
        assert result.state == UpdateState.COMMITTED
        saved = store.get(editor.id)
        assert saved.plugins == [BASELINE_PLUGIN]
        assert saved.full_name == "Ed"

    def test_proposed_roles_ignored_without_permission(self, service, store, editor):
        params = UserUpdateRequest(plugins=[BASELINE_PLUGIN], roles=["superuser"])
        result = service.update(editor, editor.id, params)

        assert result.ok is True
        assert store.get(editor.id).roles == [Role.REFINERY]

    def test_superuser_assigns_roles(self, service, store, superuser, editor, hooks):
        updated = []
        hooks.register("user_update_after", lambda payload: updated.append(payload["user"].username))

        params = UserUpdateRequest(roles=["refinery", "superuser"])
        result = service.update(superuser, editor.id, params)

        assert result.ok is True
        saved = store.get(editor.id)
        assert saved.roles == [Role.REFINERY, Role.SUPERUSER]
        assert saved.plugins == [BASELINE_PLUGIN, "refinery_pages"]
        assert updated == ["editor"]

    def test_cannot_update_others(self, service, editor, author):
        result = service.update(editor, author.id, UserUpdateRequest(full_name="X"))

        assert result.kind == ErrorKind.UNAUTHORIZED

    def test_missing_user(self, service, superuser):
        assert service.update(superuser, 999, UserUpdateRequest()).kind == ErrorKind.NOT_FOUND

    def test_unknown_role(self, service, superuser, editor):
        result = service.update(superuser, editor.id, UserUpdateRequest(roles=["owner"]))

        assert result.kind == ErrorKind.UNKNOWN_ROLE
        assert result.state == UpdateState.REJECTED

    def test_unknown_plugin(self, service, superuser, editor):
        result = service.update(superuser, editor.id, UserUpdateRequest(plugins=["nope"]))

        assert result.kind == ErrorKind.UNKNOWN_PLUGIN


class TestPasswords:
    """Tests for password changes during update."""

    def test_blank_password_ignored(self, service, store, superuser):
        before = store.get(superuser.id).password_hash
        params = UserUpdateRequest(password="", password_confirmation="", full_name="Admin")

        result = service.update(superuser, superuser.id, params)

        assert result.ok is True
        assert result.reauthenticate is False
        assert store.get(superuser.id).password_hash == before

    def test_mismatched_confirmation(self, service, superuser):
        params = UserUpdateRequest(password="new-password", password_confirmation="other-password")
        result = service.update(superuser, superuser.id, params)

        assert result.kind == ErrorKind.VALIDATION_FAILED
        assert "password_confirmation" in result.errors

    def test_too_short(self, service, superuser):
        params = UserUpdateRequest(password="short", password_confirmation="short")
        result = service.update(superuser, superuser.id, params)

        assert "password" in result.errors

    def test_own_password_change_requires_reauthentication(self, service, store, auth, superuser):
        params = UserUpdateRequest(password="new-password", password_confirmation="new-password")
        result = service.update(superuser, superuser.id, params)

        assert result.ok is True
        assert result.reauthenticate is True
        assert auth.verify_password("new-password", store.get(superuser.id).password_hash)

    def test_other_users_password(self, service, superuser, editor):
        params = UserUpdateRequest(password="new-password", password_confirmation="new-password")
        result = service.update(superuser, editor.id, params)

        assert result.ok is True
        assert result.reauthenticate is False


class TestRollback:
    """Tests for rollback after a failed save."""

    def test_persist_failure_rolls_back(self, service, store, superuser, editor, audit, monkeypatch):
        real_save = store.save
        calls = []

        def flaky_save(user):
            calls.append(user.id)
            if len(calls) == 1:
                raise StorageError("disk full")
            return real_save(user)

        monkeypatch.setattr(store, "save", flaky_save)
        params = UserUpdateRequest(roles=["superuser"], plugins=["refinery_files"])

        result = service.update(superuser, editor.id, params)

        assert result.ok is False
        assert result.kind == ErrorKind.PERSIST_FAILURE
        assert result.state == UpdateState.ROLLED_BACK
        assert result.user.roles == [Role.REFINERY]
        assert result.user.plugins == [BASELINE_PLUGIN, "refinery_pages"]
        assert len(calls) == 2
        assert events(audit) == ["user_rollback"]

    def test_validation_failure_rolls_back(self, service, store, superuser, editor):
        params = UserUpdateRequest(roles=["superuser"], email="not-an-email")
        result = service.update(superuser, editor.id, params)

        assert result.kind == ErrorKind.VALIDATION_FAILED
        assert result.state == UpdateState.ROLLED_BACK
        assert "email" in result.errors
        saved = store.get(editor.id)
        assert saved.roles == [Role.REFINERY]
        assert saved.email == "editor@example.com"

    def test_rollback_failure_is_reported(self, service, store, superuser, editor, audit, monkeypatch):
        def broken_save(user):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "save", broken_save)
        result = service.update(superuser, editor.id, UserUpdateRequest(roles=["superuser"]))

        assert result.kind == ErrorKind.ROLLBACK_FAILURE
        assert result.state == UpdateState.ROLLED_BACK
        assert events(audit) == ["user_rollback_failed"]


class TestDestroy:
    """Tests for deleting users."""

    def test_superuser_deletes_user(self, service, store, superuser, author, audit):
        result = service.destroy(superuser, author.id)

        assert result.ok is True
        assert store.get(author.id) is None
        assert events(audit) == ["user_destroy"]

    def test_cannot_delete_self(self, service, store, superuser):
        result = service.destroy(superuser, superuser.id)

        assert result.kind == ErrorKind.UNAUTHORIZED
        assert store.get(superuser.id) is not None

    def test_missing_user(self, service, superuser):
        assert service.destroy(superuser, 999).kind == ErrorKind.NOT_FOUND

    @pytest.mark.parametrize("kind", [ErrorKind.UNAUTHORIZED, ErrorKind.NOT_FOUND])
    def test_result_serialization(self, service, editor, kind):
        result = service.destroy(editor, 1 if kind == ErrorKind.UNAUTHORIZED else 999)

        data = result.as_dict()
        assert data["ok"] is False
        assert data["error"] == kind.value
