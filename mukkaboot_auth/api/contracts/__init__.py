"""Public API request and response contracts."""

from mukkaboot_auth.api.contracts.models import (
    AdminCreateUserRequest,
    AdminUpdateUserRequest,
    ApiErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetPerformRequest,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    PreferencesPayload,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetTokenValidResponse,
    SessionUserResponse,
    TokenClaimsResponse,
    TokenPairResponse,
    TokenRequest,
    UserEnvelopeResponse,
    UserListMeta,
    UserListResponse,
    UserResponse,
    ValidateTokenResponse,
)

__all__ = [
    "AdminCreateUserRequest",
    "AdminUpdateUserRequest",
    "ApiErrorResponse",
    "HealthResponse",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "PasswordResetPerformRequest",
    "PasswordResetRequest",
    "PasswordResetRequestResponse",
    "PreferencesPayload",
    "ProfileUpdateRequest",
    "RegisterRequest",
    "ResetTokenValidResponse",
    "SessionUserResponse",
    "TokenClaimsResponse",
    "TokenPairResponse",
    "TokenRequest",
    "UserEnvelopeResponse",
    "UserListMeta",
    "UserListResponse",
    "UserResponse",
    "ValidateTokenResponse",
]
