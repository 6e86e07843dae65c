"""User profile and admin user-management API router."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from mukkaboot_auth.api.contracts import (
    AdminCreateUserRequest,
    AdminUpdateUserRequest,
    ApiErrorResponse,
    MessageResponse,
    ProfileUpdateRequest,
    UserEnvelopeResponse,
    UserListMeta,
    UserListResponse,
    UserResponse,
)
from mukkaboot_auth.auth.middleware import current_user, require_admin
from mukkaboot_auth.auth.models import User, user_public_view
from mukkaboot_auth.auth.user_service import DEFAULT_PAGE_SIZE, UserService

_AUTH_ERRORS = {
    401: {"model": ApiErrorResponse},
    403: {"model": ApiErrorResponse},
    404: {"model": ApiErrorResponse},
}


def _view(user: User) -> UserResponse:
    return UserResponse(**user_public_view(user))


def create_user_router(service: UserService) -> APIRouter:
    """Build router for ``/users`` endpoints; auth is enforced by middleware."""
    router = APIRouter(prefix="/users", tags=["users"])

    @router.get("/me", response_model=UserEnvelopeResponse, responses=_AUTH_ERRORS)
    def get_me(request: Request) -> UserEnvelopeResponse:
        user = service.get_user(current_user(request)["id"])
        return UserEnvelopeResponse(user=_view(user))

    @router.put(
        "/me",
        response_model=UserEnvelopeResponse,
        responses={400: {"model": ApiErrorResponse}, **_AUTH_ERRORS},
    )
    def update_me(req: ProfileUpdateRequest, request: Request) -> UserEnvelopeResponse:
        user = service.update_profile(
            current_user(request)["id"],
            email=req.email,
            current_password=req.current_password,
            new_password=req.new_password,
            preferences=req.preferences.model_dump(exclude_none=True)
            if req.preferences
            else None,
        )
        return UserEnvelopeResponse(
            message="Profile updated successfully", user=_view(user)
        )

    @router.get("", response_model=UserListResponse, responses=_AUTH_ERRORS)
    def list_users(
        request: Request,
        skip: int = Query(default=0, ge=0),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=0),
        role: str | None = None,
        active: bool | None = None,
    ) -> UserListResponse:
        require_admin(request)
        users, total = service.list_users(role=role, active=active, skip=skip, limit=limit)
        return UserListResponse(
            users=[_view(user) for user in users],
            meta=UserListMeta(skip=skip, limit=limit, total=total),
        )

    @router.get("/{user_id}", response_model=UserEnvelopeResponse, responses=_AUTH_ERRORS)
    def get_user(user_id: str, request: Request) -> UserEnvelopeResponse:
        require_admin(request)
        return UserEnvelopeResponse(user=_view(service.get_user(user_id)))

    @router.post(
        "",
        status_code=201,
        response_model=UserEnvelopeResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}, **_AUTH_ERRORS},
    )
    def create_user(req: AdminCreateUserRequest, request: Request) -> UserEnvelopeResponse:
        require_admin(request)
        user = service.create_user(req.username, req.email, req.password, req.role)
        return UserEnvelopeResponse(message="User created successfully", user=_view(user))

    @router.put(
        "/{user_id}",
        response_model=UserEnvelopeResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}, **_AUTH_ERRORS},
    )
    def update_user(
        user_id: str, req: AdminUpdateUserRequest, request: Request
    ) -> UserEnvelopeResponse:
        require_admin(request)
        user = service.update_user(
            user_id,
            email=req.email,
            role=req.role,
            active=req.active,
            verified=req.verified,
            password=req.password,
        )
        return UserEnvelopeResponse(message="User updated successfully", user=_view(user))

    @router.delete(
        "/{user_id}",
        response_model=MessageResponse,
        responses={400: {"model": ApiErrorResponse}, **_AUTH_ERRORS},
    )
    def delete_user(user_id: str, request: Request) -> MessageResponse:
        actor = require_admin(request)
        service.delete_user(actor["id"], user_id)
        return MessageResponse(message="User deleted successfully")

    return router
