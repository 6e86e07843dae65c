"""Pydantic models for authentication domain."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*\.\w{2,3}$")
EMAIL_MAX_LENGTH = 254
USER_ROLES = ("user", "admin")

UserRole = Literal["user", "admin"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class _StoredModel(BaseModel):
    """Persisted record keeping camelCase keys on disk and in MongoDB."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Return a storage document with native datetimes."""
        return self.model_dump(by_alias=True)

    def to_json_document(self) -> dict[str, Any]:
        """Return a JSON-safe storage document with ISO-8601 timestamps."""
        return self.model_dump(by_alias=True, mode="json")


class UserPreferences(BaseModel):
    """Dashboard preferences stored with a user."""

    theme: str = "system"
    language: str = "en"
    notifications: bool = True


class User(_StoredModel):
    """Persisted auth user model."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    username: str = Field(min_length=3, max_length=50)
    email: str
    password_hash: str
    role: UserRole = "user"
    active: bool = True
    verified: bool = False
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    last_login: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        email = normalize_email(value)
        if len(email) > EMAIL_MAX_LENGTH or not EMAIL_PATTERN.match(email):
            raise ValueError("Please enter a valid email address")
        return email

    @field_validator("last_login", "created_at", "updated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class RefreshToken(_StoredModel):
    """Refresh token persistence record."""

    token: str
    user_id: str
    expires: datetime
    revoked: bool = False
    created_by_ip: str = ""
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("expires", "created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def is_usable(self, now: datetime | None = None) -> bool:
        """Return whether the token may still be exchanged."""
        return not self.revoked and self.expires > (now or utc_now())


class PasswordResetToken(_StoredModel):
    """Password reset token persistence record."""

    token: str
    user_id: str
    expires: datetime
    used: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("expires", "created_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def is_usable(self, now: datetime | None = None) -> bool:
        """Return whether the token may still reset a password."""
        return not self.used and self.expires > (now or utc_now())


def user_public_view(user: User) -> dict[str, Any]:
    """Return user fields safe to expose; the password hash is dropped."""
    return user.model_dump(exclude={"password_hash"})
