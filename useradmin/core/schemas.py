"""Pydantic schemas for users admin requests.

Only the permitted user attributes are accepted; anything else in the
request body is ignored.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class UserParams(BaseModel):
    """Permitted user attributes shared by create and update."""

    username: Optional[str] = Field(None, max_length=50, description="Login name")
    email: Optional[str] = Field(None, max_length=254, description="Email address")
    full_name: Optional[str] = Field(None, max_length=200, description="Display name")
    password: Optional[str] = Field(None, max_length=128, description="New password")
    password_confirmation: Optional[str] = Field(None, max_length=128)
    plugins: Optional[list[str]] = Field(None, description="Selected plugin names")
    roles: Optional[list[str]] = Field(None, description="Selected role names")

    @field_validator("plugins", "roles")
    @classmethod
    def drop_blank_names(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        """Form submissions include an empty entry for unchecked boxes."""
        if v is None:
            return None
        return [name.strip() for name in v if name and name.strip()]

    @property
    def password_blank(self) -> bool:
        return not self.password and not self.password_confirmation

    def attributes(self) -> dict[str, Any]:
        """Profile attributes that were supplied in the request."""
        return self.model_dump(
            include={"username", "email", "full_name"},
            exclude_none=True,
        )


class UserCreateRequest(UserParams):
    """Request schema for creating a user."""

    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., min_length=1, max_length=254)


class UserUpdateRequest(UserParams):
    """Request schema for updating a user. All fields are optional."""

    pass


class SettingsUpdateRequest(BaseModel):
    """Request schema for site settings."""

    superuser_can_assign_roles: bool
