"""Users admin actions: list, new, create, edit, update and destroy.

Each action takes the acting user explicitly and returns an AdminResult.
Expected failures (permissions, lockout, validation, storage) are reported
through ``AdminResult.kind`` rather than raised.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .audit_log import AuditLogger
from .auth import AuthManager
from .authorizer import RoleSettings, UserAdminAuthorizer
from .errors import (
    ErrorKind,
    LockoutPrevented,
    PersistFailure,
    PluginNotFound,
    RoleNotFound,
    RollbackFailure,
    Unauthorized,
    UserAdminError,
    ValidationFailed,
)
from .hooks import HookManager, UserEvent
from .logging import admin_logger as logger
from .models import Role, User
from .plugins import PluginRegistry
from .schemas import UserCreateRequest, UserParams, UserUpdateRequest
from .storage import StorageError, UserStore


class UpdateState(str, Enum):
    """Progress of a single request through the update flow."""

    RECEIVED = "received"
    LOCKOUT_CHECK = "lockout_check"
    REJECTED = "rejected"
    MEMENTO_CAPTURE = "memento_capture"
    APPLY = "apply"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class AdminResult:
    """Outcome of a users admin action.

    Attributes:
        ok: Whether the action succeeded.
        kind: Error kind when the action failed.
        state: Final state for updates (None for other actions).
        user: The affected user, if any.
        users: User list for index.
        form: Form options (available plugins/roles, selections).
        errors: Field errors for validation failures.
        message: Human readable summary.
        reauthenticate: The actor changed their own password.
    """

    ok: bool
    kind: ErrorKind | None = None
    state: UpdateState | None = None
    user: User | None = None
    users: list[User] = field(default_factory=list)
    form: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, list[str]] = field(default_factory=dict)
    message: str = ""
    reauthenticate: bool = False

    @classmethod
    def failure(cls, error: UserAdminError, **kwargs: Any) -> "AdminResult":
        errors = error.errors if isinstance(error, ValidationFailed) else {}
        return cls(ok=False, kind=error.kind, errors=errors, message=str(error), **kwargs)

    def as_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        data: dict[str, Any] = {"ok": self.ok}
        if self.kind is not None:
            data["error"] = self.kind.value
        if self.state is not None:
            data["state"] = self.state.value
        if self.message:
            data["message"] = self.message
        if self.errors:
            data["errors"] = self.errors
        if self.user is not None:
            data["user"] = self.user.public_dict()
        if self.users:
            data["users"] = [u.public_dict() for u in self.users]
        if self.form:
            data["form"] = self.form
        if self.reauthenticate:
            data["reauthenticate"] = True
        return data


def inviting_name(username: str) -> str:
    """Username split on whitespace with each word capitalized."""
    return " ".join(word.capitalize() for word in username.split())


class UserAdminService:
    """Binds the authorizer to persistence, plugins, hooks and audit."""

    def __init__(
        self,
        store: UserStore,
        registry: PluginRegistry,
        settings: RoleSettings,
        auth: AuthManager,
        hooks: HookManager | None = None,
        audit: AuditLogger | None = None,
        password_min_length: int = 12,
    ):
        """Initialize the service.

        Args:
            store: User persistence.
            registry: Registered plugins.
            settings: Site settings (``superuser_can_assign_roles``).
            auth: Password hashing.
            hooks: Hook manager for user events.
            audit: Audit logger.
            password_min_length: Minimum length for new passwords.
        """
        self.store = store
        self.registry = registry
        self.settings = settings
        self.auth = auth
        self.hooks = hooks or HookManager()
        self.audit = audit
        self.password_min_length = password_min_length
        self.authorizer = UserAdminAuthorizer(store, registry)

    def _audit(self, method: str, *args: Any, **kwargs: Any) -> None:
        if self.audit is not None:
            getattr(self.audit, method)(*args, **kwargs)

    def _unauthorized(self, action: str, actor: User, target: User | None = None) -> AdminResult:
        username = target.username if target else None
        logger.warning(f"{actor.username} tried to {action} user {username!r} without permission")
        self._audit("log_unauthorized", action, username, actor.username)
        return AdminResult.failure(Unauthorized(f"Not allowed to {action} this user"))

    def _find(self, user_id: int) -> User | None:
        return self.store.get(user_id)

    def form_options(self, user: User | None = None, selected_plugins: list[str] | None = None) -> dict[str, Any]:
        """Available plugins and roles plus the current selection."""
        if selected_plugins is None:
            selected_plugins = list(user.plugins) if user else []
        return {
            "available_plugins": self.registry.menu_options(),
            "available_roles": [{"name": role.value, "title": role.title} for role in Role],
            "selected_plugin_names": selected_plugins,
            "selected_role_names": user.role_names if user else [],
        }

    def _password_changes(self, params: UserParams) -> dict[str, Any]:
        """Hash a supplied password; blank password and confirmation are ignored.

        Raises:
            ValidationFailed: If the confirmation differs or it is too short.
        """
        if params.password_blank:
            return {}
        if params.password != params.password_confirmation:
            raise ValidationFailed({"password_confirmation": ["doesn't match Password"]})
        if len(params.password or "") < self.password_min_length:
            raise ValidationFailed(
                {"password": [f"is too short (minimum is {self.password_min_length} characters)"]}
            )
        return {"password_hash": self.auth.hash_password(params.password)}

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def index(self, actor: User) -> AdminResult:
        """List users ordered by username."""
        if not self.authorizer.can_manage_users(actor):
            return self._unauthorized("list", actor)
        return AdminResult(ok=True, users=self.store.all())

    def new(self, actor: User) -> AdminResult:
        """Empty form for a new user."""
        if not self.authorizer.can_manage_users(actor):
            return self._unauthorized("create", actor)
        return AdminResult(ok=True, form=self.form_options(selected_plugins=[]))

    def create(self, actor: User, params: UserCreateRequest) -> AdminResult:
        """Create and invite a user.

        The user gets a random temporary password. Selected roles are only
        applied when the actor can assign roles; otherwise the user gets the
        baseline role.
        """
        if not self.authorizer.can_manage_users(actor):
            return self._unauthorized("create", actor)

        selected_plugins = params.plugins or []
        selected_roles = params.roles or []
        form = self.form_options(selected_plugins=selected_plugins)

        try:
            plugins = self.authorizer.resolve_plugins(selected_plugins)
            can_assign = self.authorizer.can_assign_roles(actor, self.settings)
            roles = self.authorizer.resolve_roles(selected_roles) if can_assign else []

            tmp_password = self.auth.friendly_token()
            user = User(
                **params.attributes(),
                password_hash=self.auth.hash_password(tmp_password),
                plugins=plugins,
                roles=roles,
                inviting_user=inviting_name(actor.username),
            )
            if not can_assign:
                user.add_role(Role.REFINERY)
            self.store.save(user)
        except ValidationError as e:
            return AdminResult.failure(ValidationFailed.from_validation_error(e), form=form)
        except (ValidationFailed, RoleNotFound, PluginNotFound) as e:
            return AdminResult.failure(e, form=form)
        except StorageError as e:
            logger.error(f"Could not create user {params.username!r}: {e}")
            return AdminResult(ok=False, kind=ErrorKind.PERSIST_FAILURE, message=str(e), form=form)

        logger.info(f"{actor.username} created user {user.username} (id {user.id})")
        self._audit(
            "log_user_change", "create", user.username, actor.username,
            roles=user.role_names, plugins=user.plugins,
        )
        self.hooks.emit(UserEvent.CREATE_AFTER, {"user": user, "actor": actor})
        self.hooks.emit(UserEvent.INVITED, {"user": user, "inviting_user": user.inviting_user})
        return AdminResult(ok=True, user=user, message=f"An invitation has been sent to {user.email}")

    def edit(self, actor: User, user_id: int) -> AdminResult:
        """Form for editing an existing user."""
        target = self._find(user_id)
        if target is None:
            return AdminResult(ok=False, kind=ErrorKind.NOT_FOUND, message=f"User {user_id} not found")
        if not self.authorizer.can_edit(actor, target):
            return self._unauthorized("edit", actor, target)
        return AdminResult(ok=True, user=target, form=self.form_options(target))

    def update(self, actor: User, user_id: int, params: UserUpdateRequest) -> AdminResult:
        """Update a user's roles, plugins, profile and password.

        Rejects self-edits that would remove the actor's admin access.
        If the save fails, the user's previous roles and plugins are
        restored.
        """
        target = self._find(user_id)
        if target is None:
            return AdminResult(ok=False, kind=ErrorKind.NOT_FOUND, message=f"User {user_id} not found")
        if not self.authorizer.can_edit(actor, target) or not self.authorizer.can_update(actor, target):
            return self._unauthorized("update", actor, target)

        form = self.form_options(target)
        try:
            password_changes = self._password_changes(params)
        except ValidationFailed as e:
            return AdminResult.failure(e, state=UpdateState.REJECTED, user=target, form=form)

        can_assign = self.authorizer.can_assign_roles(actor, self.settings)
        proposed_roles = params.roles if params.roles is not None else target.role_names
        selected_roles = self.authorizer.select_role_names(target, proposed_roles, can_assign)
        selected_plugins = params.plugins

        if self.authorizer.would_lock_out(actor, target, selected_plugins, selected_roles):
            logger.info(f"Prevented {actor.username} from locking themselves out")
            self._audit("log_lockout_prevented", actor.username, selected_plugins or [], selected_roles)
            return AdminResult.failure(
                LockoutPrevented("You cannot remove your own access to the users admin"),
                state=UpdateState.REJECTED,
                user=target,
                form=form,
            )

        try:
            roles, memento = self.authorizer.prepare_update(target, selected_roles, selected_plugins, can_assign)
            plugins = (
                self.authorizer.resolve_plugins(selected_plugins)
                if selected_plugins is not None
                else list(target.plugins)
            )
        except (RoleNotFound, PluginNotFound) as e:
            return AdminResult.failure(e, state=UpdateState.REJECTED, user=target, form=form)

        try:
            self.authorizer.commit(
                target, roles, plugins, memento,
                attributes={**params.attributes(), **password_changes},
            )
        except PersistFailure as failure:
            return self._rollback(actor, target, failure, form)

        logger.info(f"{actor.username} updated user {target.username} (id {target.id})")
        self._audit(
            "log_user_change", "update", target.username, actor.username,
            roles=target.role_names, plugins=target.plugins,
        )
        self.hooks.emit(UserEvent.UPDATE_AFTER, {"user": target, "actor": actor})
        return AdminResult(
            ok=True,
            state=UpdateState.COMMITTED,
            user=target,
            message=f"'{target.username}' was successfully updated.",
            reauthenticate=bool(password_changes) and actor.is_same_user(target),
        )

    def _rollback(self, actor: User, target: User, failure: PersistFailure, form: dict[str, Any]) -> AdminResult:
        """Restore the memento after a failed commit."""
        logger.warning(f"Update of user {target.username} failed, rolling back: {failure.cause}")
        try:
            self.authorizer.rollback(target, failure.memento)
        except RollbackFailure as e:
            self._audit("log_rollback", target.username, actor.username, failure.memento, failed=True)
            return AdminResult.failure(e, state=UpdateState.ROLLED_BACK, user=target, form=form)

        self._audit("log_rollback", target.username, actor.username, failure.memento)
        self.hooks.emit(UserEvent.ROLLBACK, {"user": target, "actor": actor})

        cause = failure.cause
        if isinstance(cause, ValidationFailed):
            return AdminResult.failure(cause, state=UpdateState.ROLLED_BACK, user=target, form=form)
        return AdminResult.failure(failure, state=UpdateState.ROLLED_BACK, user=target, form=form)

    def destroy(self, actor: User, user_id: int) -> AdminResult:
        """Delete a user."""
        target = self._find(user_id)
        if target is None:
            return AdminResult(ok=False, kind=ErrorKind.NOT_FOUND, message=f"User {user_id} not found")
        if not self.authorizer.can_delete(actor, target):
            return self._unauthorized("delete", actor, target)

        try:
            self.store.delete(user_id)
        except StorageError as e:
            logger.error(f"Could not delete user {target.username}: {e}")
            return AdminResult(ok=False, kind=ErrorKind.PERSIST_FAILURE, message=str(e))

        logger.info(f"{actor.username} deleted user {target.username} (id {target.id})")
        self._audit("log_user_change", "destroy", target.username, actor.username)
        self.hooks.emit(UserEvent.DESTROY_AFTER, {"user": target, "actor": actor})
        return AdminResult(ok=True, user=target, message=f"'{target.username}' was successfully removed.")
