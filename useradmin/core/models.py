"""Pydantic models for the users admin."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from .plugins import PluginRegistry


# Minimum grants a user needs to keep reaching the admin panel
BASELINE_ROLE = "refinery"
BASELINE_PLUGIN = "refinery_authentication_devise"

# The users admin itself is exposed through the authentication plugin
USERS_PLUGIN = BASELINE_PLUGIN


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Named permission grants.

    - REFINERY: baseline role, required to enter the admin panel
    - SUPERUSER: elevated privileges, can edit any user and assign roles
    """

    REFINERY = "refinery"
    SUPERUSER = "superuser"

    @property
    def title(self) -> str:
        """Display title of the role."""
        return self.value.capitalize()


def lookup_role(name: str | None) -> Role | None:
    """Resolve a role by name, ignoring case and surrounding whitespace.

    Args:
        name: Role name, e.g. "Refinery" or "superuser".

    Returns:
        The matching Role, or None if no role has that name.
    """
    if not name:
        return None
    try:
        return Role(name.strip().lower())
    except ValueError:
        return None


class User(BaseModel):
    """User account with role and plugin assignments."""

    id: int | None = None
    username: str = Field(..., min_length=3, max_length=50)
    email: str
    full_name: str | None = None
    password_hash: str = ""
    roles: list[Role] = Field(default_factory=list)
    plugins: list[str] = Field(default_factory=list)
    inviting_user: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Allow letters, digits, underscores, dots and dashes."""
        v = v.strip()
        if not re.match(r"^[A-Za-z0-9_.\-]+$", v):
            raise ValueError("Username may only contain letters, digits, '_', '.' and '-'")
        return v.lower()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Basic email validation."""
        v = v.strip().lower()
        if not re.match(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$", v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("roles")
    @classmethod
    def unique_roles(cls, v: list[Role]) -> list[Role]:
        return list(dict.fromkeys(v))

    @field_validator("plugins")
    @classmethod
    def unique_plugins(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @property
    def persisted(self) -> bool:
        """Whether the user has been saved at least once."""
        return self.id is not None

    @property
    def is_superuser(self) -> bool:
        """Whether the user holds the superuser role."""
        return Role.SUPERUSER in self.roles

    @property
    def role_names(self) -> list[str]:
        return [role.value for role in self.roles]

    def has_role(self, role: Role | str) -> bool:
        """Check whether the user holds a role.

        Args:
            role: Role or role name (case-insensitive).

        Returns:
            True if the role is assigned.
        """
        if not isinstance(role, Role):
            role = lookup_role(role)
        return role is not None and role in self.roles

    def add_role(self, role: Role) -> None:
        """Assign a role if not already held."""
        if role not in self.roles:
            self.roles.append(role)

    def authorized_plugins(self, registry: "PluginRegistry") -> list[str]:
        """Plugin names the user may access.

        Superusers are authorized for every registered plugin.

        Args:
            registry: Registry of known plugins.

        Returns:
            List of plugin names.
        """
        if self.is_superuser:
            return registry.names()
        return list(self.plugins)

    def is_same_user(self, other: "User") -> bool:
        """Identity comparison by id, falling back to username."""
        if self.id is not None and other.id is not None:
            return self.id == other.id
        return self.username == other.username

    def public_dict(self) -> dict[str, Any]:
        """Serialize without the password hash."""
        return self.model_dump(mode="json", exclude={"password_hash"})


@dataclass(frozen=True)
class UserMemento:
    """Roles and plugins of a user captured before an update attempt."""

    user_id: int | None
    roles: tuple[Role, ...]
    plugins: tuple[str, ...]

    @classmethod
    def capture(cls, user: User) -> "UserMemento":
        return cls(
            user_id=user.id,
            roles=tuple(user.roles),
            plugins=tuple(user.plugins),
        )


class SiteSettings(BaseModel):
    """Site-level settings stored in the database."""

    superuser_can_assign_roles: bool = True
    last_modified: datetime = Field(default_factory=utc_now)


class AuditEvent(BaseModel):
    """Audit log event model."""

    timestamp: datetime = Field(default_factory=utc_now)
    event: str
    actor: str
    details: dict[str, Any] = Field(default_factory=dict)
