"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )

    @property
    def error_code(self) -> str:
        """Return the machine-readable error code."""
        return str(self.detail["error_code"])


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
    else:
        error_code = f"HTTP_{status_code}"
        message = str(detail or "HTTP error")
    return {"error": message, "error_code": error_code, "status": status_code}


def validation_error(message: str) -> ApiError:
    return ApiError(
        status_code=400,
        error_code=ApiErrorCode.VALIDATION_ERROR,
        message=message,
    )


def invalid_credentials() -> ApiError:
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_INVALID_CREDENTIALS,
        message="Invalid username or password",
    )


def invalid_or_expired_token(status_code: int = 401) -> ApiError:
    return ApiError(
        status_code=status_code,
        error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
        message="Invalid or expired token",
    )


def user_not_found(status_code: int = 404) -> ApiError:
    return ApiError(
        status_code=status_code,
        error_code=ApiErrorCode.USER_NOT_FOUND,
        message="User not found",
    )


def duplicate_user() -> ApiError:
    return ApiError(
        status_code=409,
        error_code=ApiErrorCode.DUPLICATE_KEY,
        message="Username or email already exists",
    )


def forbidden(message: str) -> ApiError:
    return ApiError(
        status_code=403,
        error_code=ApiErrorCode.AUTH_FORBIDDEN,
        message=message,
    )


def feature_disabled(message: str) -> ApiError:
    return ApiError(
        status_code=403,
        error_code=ApiErrorCode.FEATURE_DISABLED,
        message=message,
    )
