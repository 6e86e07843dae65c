"""Pydantic API request and response models used in OpenAPI contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exposing camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error: str = Field(description="Human-readable error message")
    error_code: str = Field(description="Machine-readable error code")
    status: int = Field(description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]
    service: str = "auth"


class MessageResponse(BaseModel):
    """Plain acknowledgement payload."""

    message: str


class LoginRequest(BaseModel):
    """Login request payload."""

    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenRequest(BaseModel):
    """Payload carrying a single opaque or signed token."""

    token: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    """Self-service registration payload."""

    username: str = Field(min_length=1)
    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1)


class PasswordResetRequest(BaseModel):
    """Password reset request payload."""

    email: str = Field(min_length=1, max_length=254)


class PasswordResetPerformRequest(BaseModel):
    """Password reset completion payload."""

    token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class PreferencesPayload(BaseModel):
    """Partial user preferences update."""

    theme: str | None = None
    language: str | None = None
    notifications: bool | None = None


class ProfileUpdateRequest(CamelModel):
    """Own profile update payload."""

    email: str | None = Field(default=None, max_length=254)
    current_password: str | None = None
    new_password: str | None = None
    preferences: PreferencesPayload | None = None


class AdminCreateUserRequest(BaseModel):
    """Admin user creation payload."""

    username: str = Field(min_length=1)
    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1)
    role: str = "user"


class AdminUpdateUserRequest(BaseModel):
    """Admin user update payload."""

    email: str | None = Field(default=None, max_length=254)
    role: str | None = None
    active: bool | None = None
    verified: bool | None = None
    password: str | None = None


class SessionUserResponse(BaseModel):
    """User summary returned on login."""

    id: str
    username: str
    email: str
    role: str


class LoginResponse(CamelModel):
    """Login response payload with token pair."""

    access_token: str
    refresh_token: str
    user: SessionUserResponse


class TokenPairResponse(CamelModel):
    """Refresh response payload with rotated token pair."""

    access_token: str
    refresh_token: str


class TokenClaimsResponse(BaseModel):
    """Identity decoded from a valid access token."""

    id: str
    username: str
    role: str


class ValidateTokenResponse(BaseModel):
    """Access token validation result."""

    valid: bool
    user: TokenClaimsResponse | None = None
    error: str | None = None


class PasswordResetRequestResponse(BaseModel):
    """Generic password reset acknowledgement."""

    message: str
    token: str | None = None


class ResetTokenValidResponse(BaseModel):
    """Password reset token validation result."""

    valid: Literal[True]


class UserResponse(CamelModel):
    """Public user projection, never carrying the password hash."""

    id: str
    username: str
    email: str
    role: str
    active: bool
    verified: bool
    preferences: dict[str, Any]
    last_login: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserEnvelopeResponse(BaseModel):
    """Single user payload with optional message."""

    message: str | None = None
    user: UserResponse


class UserListMeta(BaseModel):
    """Pagination metadata for admin user listing."""

    skip: int
    limit: int
    total: int


class UserListResponse(BaseModel):
    """Admin user listing payload."""

    users: list[UserResponse]
    meta: UserListMeta
