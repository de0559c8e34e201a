"""Authorization, self-lockout prevention and rollback for user updates.

Update flow::

    Received -> LockoutCheck -> Rejected
                             -> MementoCapture -> Apply -> Committed
                                                        -> RolledBack

Every check takes the acting user explicitly; nothing here reads a global
session.
"""

from typing import Any, Iterable, Protocol

from pydantic import ValidationError

from .errors import (
    PersistFailure,
    PluginNotFound,
    RoleNotFound,
    RollbackFailure,
    ValidationFailed,
)
from .logging import authorizer_logger as logger
from .models import (
    BASELINE_PLUGIN,
    BASELINE_ROLE,
    USERS_PLUGIN,
    Role,
    User,
    UserMemento,
    lookup_role,
)
from .plugins import PluginRegistry
from .storage import StorageError, UserStore


class RoleSettings(Protocol):
    """Anything exposing the site's role assignment switch."""

    superuser_can_assign_roles: bool


class UserAdminAuthorizer:
    """Decides whether user changes are permitted and safe to apply."""

    def __init__(self, store: UserStore, registry: PluginRegistry):
        """Initialize authorizer.

        Args:
            store: Persistence for user records.
            registry: Registered plugins, used to resolve plugin names.
        """
        self.store = store
        self.registry = registry

    # ------------------------------------------------------------------
    # Permission checks
    # ------------------------------------------------------------------

    def can_edit(self, actor: User, target: User) -> bool:
        """Superusers may edit anyone; everyone else only themselves."""
        return actor.is_superuser or actor.is_same_user(target)

    def can_manage_users(self, actor: User) -> bool:
        """Whether the actor may use the users admin at all.

        Requires the baseline role plus access to the users plugin
        (superusers have access to every plugin).
        """
        if not actor.has_role(BASELINE_ROLE):
            return False
        return USERS_PLUGIN in actor.authorized_plugins(self.registry)

    def can_update(self, actor: User, target: User) -> bool:
        """Whether the actor may submit changes for the target.

        Users-plugin holders, superusers and the target themself qualify.
        """
        return (
            USERS_PLUGIN in actor.plugins
            or actor.username == target.username
            or actor.is_superuser
        )

    def can_assign_roles(self, actor: User, settings: RoleSettings) -> bool:
        """Whether the actor's proposed roles are honoured.

        Args:
            actor: Acting user.
            settings: Site settings with ``superuser_can_assign_roles``.
        """
        return bool(settings.superuser_can_assign_roles) and actor.has_role(Role.SUPERUSER)

    def can_delete(self, actor: User, target: User) -> bool:
        """Superusers and the actor's own account cannot be deleted."""
        return (
            self.can_manage_users(actor)
            and target.persisted
            and not target.is_superuser
            and not actor.is_same_user(target)
        )

    def would_lock_out(
        self,
        actor: User,
        target: User,
        proposed_plugins: list[str] | None,
        proposed_roles: list[str] | None,
    ) -> bool:
        """Check whether a self-edit removes the actor's admin access.

        Only applies when the actor edits themself with a non-empty plugin
        selection.

        Args:
            actor: Acting user.
            target: User being edited.
            proposed_plugins: Plugin names selected for the target.
            proposed_roles: Role names selected for the target.

        Returns:
            True if the update must be rejected.
        """
        if not actor.is_same_user(target) or not proposed_plugins:
            return False

        role_names = [str(name).lower() for name in proposed_roles or []]
        return BASELINE_PLUGIN not in proposed_plugins or BASELINE_ROLE not in role_names

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def select_role_names(
        self,
        target: User,
        proposed_roles: list[str] | None,
        actor_can_assign_roles: bool,
    ) -> list[str]:
        """Role names that an update will actually apply.

        Actors that cannot assign roles keep the target's current roles.
        """
        if not actor_can_assign_roles:
            return target.role_names
        return list(proposed_roles or [])

    def resolve_roles(self, names: Iterable[str]) -> list[Role]:
        """Resolve role names to roles.

        Raises:
            RoleNotFound: If a name matches no role.
        """
        roles: list[Role] = []
        for name in names:
            role = lookup_role(name)
            if role is None:
                raise RoleNotFound(name)
            if role not in roles:
                roles.append(role)
        return roles

    def resolve_plugins(self, names: Iterable[str]) -> list[str]:
        """Check plugin names against the registry, keeping their order.

        Raises:
            PluginNotFound: If a name is not registered.
        """
        plugins: list[str] = []
        for name in names:
            if self.registry.lookup_by_name(name) is None:
                raise PluginNotFound(name)
            if name not in plugins:
                plugins.append(name)
        return plugins

    # ------------------------------------------------------------------
    # Update lifecycle
    # ------------------------------------------------------------------

    def prepare_update(
        self,
        target: User,
        proposed_roles: list[str] | None,
        proposed_plugins: list[str] | None,
        actor_can_assign_roles: bool,
    ) -> tuple[list[Role], UserMemento]:
        """Resolve the roles to apply and snapshot the target.

        Args:
            target: User being updated.
            proposed_roles: Role names from the request.
            proposed_plugins: Plugin names from the request.
            actor_can_assign_roles: Result of ``can_assign_roles``.

        Returns:
            Effective roles and a memento of the target's current state.

        Raises:
            RoleNotFound: If a proposed role name is unknown.
        """
        if actor_can_assign_roles:
            effective_roles = self.resolve_roles(proposed_roles or [])
        else:
            effective_roles = list(target.roles)
        return effective_roles, UserMemento.capture(target)

    def commit(
        self,
        target: User,
        effective_roles: list[Role],
        effective_plugins: list[str],
        memento: UserMemento,
        attributes: dict[str, Any] | None = None,
    ) -> User:
        """Apply roles, plugins and attribute changes, then persist.

        Roles and plugins are set on the target before saving. Attribute
        changes are validated on a copy and only copied onto the target
        once the save succeeded.

        Args:
            target: User being updated.
            effective_roles: Roles from ``prepare_update``.
            effective_plugins: Resolved plugin names.
            memento: Snapshot from ``prepare_update``.
            attributes: Other field changes (email, username, ...).

        Returns:
            The updated target.

        Raises:
            PersistFailure: If validation or the save failed.
        """
        target.roles = list(effective_roles)
        target.plugins = list(effective_plugins)
        attributes = attributes or {}

        try:
            candidate = User.model_validate({**target.model_dump(), **attributes})
            self.store.save(candidate)
        except ValidationError as e:
            raise PersistFailure(memento, ValidationFailed.from_validation_error(e))
        except (ValidationFailed, StorageError) as e:
            raise PersistFailure(memento, e)

        for field in (*attributes, "updated_at"):
            setattr(target, field, getattr(candidate, field))
        return target

    def rollback(self, target: User, memento: UserMemento) -> User:
        """Restore the target's roles and plugins and persist them.

        Args:
            target: User whose update failed.
            memento: Snapshot taken before the update.

        Returns:
            The restored target.

        Raises:
            RollbackFailure: If the restored state cannot be saved.
        """
        target.roles = list(memento.roles)
        target.plugins = list(memento.plugins)
        try:
            self.store.save(target)
        except (ValidationFailed, StorageError) as e:
            logger.critical(f"Rollback of user {target.id} ({target.username}) failed: {e}")
            raise RollbackFailure(memento, e)

        logger.warning(f"Rolled back roles and plugins of user {target.id} ({target.username})")
        return target
