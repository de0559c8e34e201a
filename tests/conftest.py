"""Shared fixtures for users admin tests."""

import pytest

from useradmin.core.audit_log import AuditLogger
from useradmin.core.auth import AuthManager
from useradmin.core.authorizer import UserAdminAuthorizer
from useradmin.core.hooks import HookManager
from useradmin.core.models import BASELINE_PLUGIN, Role, SiteSettings, User
from useradmin.core.plugins import PluginRegistry
from useradmin.core.storage import Storage, UserStore
from useradmin.core.users import UserAdminService

SUPERUSER_PASSWORD = "superuser-password"


def make_user(store: UserStore, username: str, roles: list[Role], plugins: list[str]) -> User:
    """Save a user with the given grants."""
    return store.save(
        User(
            username=username,
            email=f"{username}@example.com",
            roles=roles,
            plugins=plugins,
        )
    )


@pytest.fixture
def superuser_password():
    return SUPERUSER_PASSWORD


@pytest.fixture
def auth():
    return AuthManager(bcrypt_rounds=4)


@pytest.fixture
def storage(tmp_path, auth):
    storage = Storage(tmp_path / "data" / "db.json")
    storage.initialize(auth.hash_password(SUPERUSER_PASSWORD))
    return storage


@pytest.fixture
def store(storage):
    return UserStore(storage)


@pytest.fixture
def registry():
    return PluginRegistry()


@pytest.fixture
def authorizer(store, registry):
    return UserAdminAuthorizer(store, registry)


@pytest.fixture
def superuser(store):
    return store.get(1)


@pytest.fixture
def editor(store):
    """Regular admin user with access to the users admin."""
    return make_user(store, "editor", [Role.REFINERY], [BASELINE_PLUGIN, "refinery_pages"])


@pytest.fixture
def author(store):
    """Regular admin user without access to the users admin."""
    return make_user(store, "author", [Role.REFINERY], ["refinery_pages"])


@pytest.fixture
def hooks():
    return HookManager()


@pytest.fixture
def audit(tmp_path):
    return AuditLogger(tmp_path / "data" / "audit.log")


@pytest.fixture
def settings():
    return SiteSettings()


@pytest.fixture
def service(store, registry, settings, auth, hooks, audit):
    return UserAdminService(
        store=store,
        registry=registry,
        settings=settings,
        auth=auth,
        hooks=hooks,
        audit=audit,
        password_min_length=8,
    )
