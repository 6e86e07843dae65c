"""Password reset API router."""

from __future__ import annotations

from fastapi import APIRouter

from mukkaboot_auth.api.contracts import (
    ApiErrorResponse,
    MessageResponse,
    PasswordResetPerformRequest,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    ResetTokenValidResponse,
    TokenRequest,
)
from mukkaboot_auth.api.errors import invalid_or_expired_token
from mukkaboot_auth.auth.service import AuthService


def create_password_reset_router(service: AuthService) -> APIRouter:
    """Build router with reset request/validate/complete endpoints."""
    router = APIRouter(prefix="/password-reset", tags=["password-reset"])

    @router.post(
        "/request",
        response_model=PasswordResetRequestResponse,
        response_model_exclude_none=True,
        responses={400: {"model": ApiErrorResponse}, 403: {"model": ApiErrorResponse}},
    )
    def request_reset(req: PasswordResetRequest) -> PasswordResetRequestResponse:
        return service.request_password_reset(req.email)

    @router.post(
        "/validate",
        response_model=ResetTokenValidResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    def validate_reset(req: TokenRequest) -> ResetTokenValidResponse:
        if not service.validate_reset_token(req.token):
            raise invalid_or_expired_token(status_code=400)
        return ResetTokenValidResponse(valid=True)

    @router.post(
        "/reset",
        response_model=MessageResponse,
        responses={400: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    def reset_password(req: PasswordResetPerformRequest) -> MessageResponse:
        service.perform_password_reset(req.token, req.password)
        return MessageResponse(message="Password reset successful")

    return router
