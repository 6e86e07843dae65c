"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from mukkaboot_auth.api.contracts import (
    ApiErrorResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    TokenClaimsResponse,
    TokenPairResponse,
    TokenRequest,
    UserEnvelopeResponse,
    UserResponse,
    ValidateTokenResponse,
)
from mukkaboot_auth.auth.models import user_public_view
from mukkaboot_auth.auth.rate_limiter import LoginRateLimiter
from mukkaboot_auth.auth.service import AuthService
from mukkaboot_auth.auth.user_service import UserService


def client_ip_of(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def create_auth_router(
    service: AuthService,
    user_service: UserService,
    rate_limiter: LoginRateLimiter | None,
) -> APIRouter:
    """Build router with login/refresh/logout/validate-token/register endpoints."""
    router = APIRouter(tags=["auth"])

    @router.post(
        "/login",
        response_model=LoginResponse,
        responses={
            400: {"model": ApiErrorResponse},
            401: {"model": ApiErrorResponse},
            429: {"model": ApiErrorResponse},
        },
    )
    def login(req: LoginRequest, request: Request) -> LoginResponse:
        """Authenticate user and return token pair."""
        client_ip = client_ip_of(request)
        if rate_limiter is not None:
            rate_limiter.hit(client_ip)
        return service.login(req.username, req.password, client_ip)

    @router.post(
        "/refresh-token",
        response_model=TokenPairResponse,
        responses={400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}},
    )
    def refresh_token(req: TokenRequest, request: Request) -> TokenPairResponse:
        """Rotate refresh token and issue new session tokens."""
        return service.refresh(req.token, client_ip_of(request))

    @router.post(
        "/logout",
        response_model=MessageResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    def logout(req: TokenRequest) -> MessageResponse:
        """Invalidate supplied refresh token."""
        service.logout(req.token)
        return MessageResponse(message="Logout successful")

    @router.post(
        "/validate-token",
        response_model=ValidateTokenResponse,
        response_model_exclude_none=True,
        responses={401: {"model": ValidateTokenResponse}},
    )
    def validate_token(req: TokenRequest):
        """Report whether an access token is valid, and why not."""
        try:
            claims = service.verify_access_token(req.token)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"valid": False, "error": exc.detail["message"]},
            )
        return ValidateTokenResponse(valid=True, user=TokenClaimsResponse(**claims))

    @router.post(
        "/register",
        status_code=201,
        response_model=UserEnvelopeResponse,
        responses={
            400: {"model": ApiErrorResponse},
            403: {"model": ApiErrorResponse},
            409: {"model": ApiErrorResponse},
        },
    )
    def register(req: RegisterRequest) -> UserEnvelopeResponse:
        """Create a user account with the default role."""
        user = user_service.register(req.username, req.email, req.password)
        return UserEnvelopeResponse(
            message="User registered successfully",
            user=UserResponse(**user_public_view(user)),
        )

    return router
