"""Error kinds raised by the users admin."""

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

if TYPE_CHECKING:
    from .models import UserMemento


class ErrorKind(str, Enum):
    """Failure categories reported to callers of the users admin."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    LOCKOUT_PREVENTED = "lockout_prevented"
    VALIDATION_FAILED = "validation_failed"
    UNKNOWN_ROLE = "unknown_role"
    UNKNOWN_PLUGIN = "unknown_plugin"
    PERSIST_FAILURE = "persist_failure"
    ROLLBACK_FAILURE = "rollback_failure"


class UserAdminError(Exception):
    """Base exception for users admin errors."""

    kind: ErrorKind

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)


class Unauthorized(UserAdminError):
    """The actor lacks permission for the requested action."""

    kind = ErrorKind.UNAUTHORIZED


class LockoutPrevented(UserAdminError):
    """A self-edit would remove the actor's own admin access."""

    kind = ErrorKind.LOCKOUT_PREVENTED


class ValidationFailed(UserAdminError):
    """A user record failed validation.

    Attributes:
        errors: Field name -> list of messages.
    """

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, errors: dict[str, list[str]]):
        self.errors = errors
        summary = "; ".join(f"{field} {', '.join(msgs)}" for field, msgs in errors.items())
        super().__init__(summary)

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "ValidationFailed":
        """Convert a pydantic ValidationError into field errors."""
        errors: dict[str, list[str]] = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "base"
            errors.setdefault(field, []).append(error["msg"])
        return cls(errors)


class RoleNotFound(UserAdminError):
    """No role is registered under the requested name."""

    kind = ErrorKind.UNKNOWN_ROLE

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown role: {name}")


class PluginNotFound(UserAdminError):
    """No plugin is registered under the requested name."""

    kind = ErrorKind.UNKNOWN_PLUGIN

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown plugin: {name}")


class PersistFailure(UserAdminError):
    """Applying an update failed; the memento allows restoring the user.

    Attributes:
        memento: State of the user before the update.
        cause: The validation or storage error that stopped the save.
    """

    kind = ErrorKind.PERSIST_FAILURE

    def __init__(self, memento: "UserMemento", cause: Exception):
        self.memento = memento
        self.cause = cause
        super().__init__(f"Could not save user {memento.user_id}: {cause}")


class RollbackFailure(UserAdminError):
    """Restoring a user from its memento failed. Not recoverable."""

    kind = ErrorKind.ROLLBACK_FAILURE

    def __init__(self, memento: "UserMemento", cause: Exception):
        self.memento = memento
        self.cause = cause
        super().__init__(f"Could not roll back user {memento.user_id}: {cause}")
