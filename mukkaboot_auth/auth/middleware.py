"""HTTP middleware that enforces bearer auth on user-management routes."""

from __future__ import annotations

from typing import Any, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from mukkaboot_auth.api.errors import (
    ApiErrorCode,
    forbidden,
    to_error_payload,
)
from mukkaboot_auth.auth.service import AuthService

PROTECTED_PREFIXES = ("/users",)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def _is_protected(path: str) -> bool:
    return any(
        path == prefix or path.startswith(prefix + "/") for prefix in PROTECTED_PREFIXES
    )


def create_auth_middleware(service: AuthService) -> Callable:
    """Create middleware function that validates access tokens on protected paths."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Validate auth for protected paths and attach claims to request state."""
        if not _is_protected(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return JSONResponse(
                status_code=401,
                content=to_error_payload(
                    {
                        "error_code": ApiErrorCode.AUTH_MISSING_TOKEN,
                        "message": "Access token required",
                    },
                    401,
                ),
            )

        try:
            user = service.verify_access_token(token)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=to_error_payload(exc.detail, exc.status_code),
            )

        request.state.user = user
        return await call_next(request)

    return auth_middleware


def current_user(request: Request) -> dict[str, Any]:
    """Return claims attached by the middleware."""
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(
            status_code=401,
            detail={
                "error_code": str(ApiErrorCode.AUTH_MISSING_TOKEN),
                "message": "Authentication required",
            },
        )
    return user


def require_admin(request: Request) -> dict[str, Any]:
    """Return claims of an admin caller or raise 403."""
    user = current_user(request)
    if user.get("role") != "admin":
        raise forbidden("Admin privileges required")
    return user
