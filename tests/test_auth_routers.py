from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from fastapi import APIRouter
from fastapi.routing import APIRoute
from starlette.requests import Request

from mukkaboot_auth.api.contracts import (
    LoginRequest,
    PasswordResetPerformRequest,
    PasswordResetRequest,
    RegisterRequest,
    TokenRequest,
)
from mukkaboot_auth.api.errors import ApiError
from mukkaboot_auth.auth.password_reset_router import create_password_reset_router
from mukkaboot_auth.auth.rate_limiter import LoginRateLimiter
from mukkaboot_auth.auth.router import create_auth_router
from tests.auth_helpers import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_USERNAME, build_services


def _request(client_ip: str = "127.0.0.1") -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [],
        "query_string": b"",
        "client": (client_ip, 1234),
        "server": ("testserver", 80),
    }
    return Request(scope)


def _endpoint(router: APIRouter, path: str):
    for route in router.routes:
        if isinstance(route, APIRoute) and route.path == path:
            return route.endpoint
    raise AssertionError(f"Route {path!r} not found")


def _auth_router(tmp_path: Path, limiter: LoginRateLimiter | None = None, **overrides):
    service, users, repos = build_services(tmp_path, **overrides)
    return create_auth_router(service, users, limiter), service, repos


def test_login_endpoint_returns_camel_case_session(tmp_path: Path) -> None:
    router, _, _ = _auth_router(tmp_path)
    login = _endpoint(router, "/login")

    response = login(LoginRequest(username=ADMIN_USERNAME, password=ADMIN_PASSWORD), _request())
    body = response.model_dump(by_alias=True)

    assert set(body) == {"accessToken", "refreshToken", "user"}
    assert body["user"]["username"] == ADMIN_USERNAME
    assert "passwordHash" not in body["user"]


def test_login_endpoint_rate_limits_eleventh_attempt(tmp_path: Path) -> None:
    limiter = LoginRateLimiter(max_attempts=10, window_seconds=900)
    router, _, _ = _auth_router(tmp_path, limiter)
    login = _endpoint(router, "/login")
    request = LoginRequest(username=ADMIN_USERNAME, password="wrong")

    statuses = []
    for _ in range(11):
        with pytest.raises(ApiError) as exc:
            login(request, _request("10.1.1.1"))
        statuses.append(exc.value.status_code)
    allowed_elsewhere = login(
        LoginRequest(username=ADMIN_USERNAME, password=ADMIN_PASSWORD), _request("10.1.1.2")
    )

    assert statuses == [401] * 10 + [429]
    assert allowed_elsewhere.user.role == "admin"


def test_refresh_and_logout_endpoints(tmp_path: Path) -> None:
    router, _, _ = _auth_router(tmp_path)
    session = _endpoint(router, "/login")(
        LoginRequest(username=ADMIN_USERNAME, password=ADMIN_PASSWORD), _request()
    )

    rotated = _endpoint(router, "/refresh-token")(
        TokenRequest(token=session.refresh_token), _request()
    )
    message = _endpoint(router, "/logout")(TokenRequest(token=rotated.refresh_token))

    assert message.message == "Logout successful"
    with pytest.raises(ApiError):
        _endpoint(router, "/refresh-token")(
            TokenRequest(token=rotated.refresh_token), _request()
        )


def test_validate_token_endpoint_reports_reason(tmp_path: Path) -> None:
    router, service, _ = _auth_router(tmp_path)
    access = service.login(ADMIN_USERNAME, ADMIN_PASSWORD).access_token
    validate = _endpoint(router, "/validate-token")

    valid = validate(TokenRequest(token=access))
    invalid = validate(TokenRequest(token="garbage"))

    assert valid.valid is True
    assert valid.user.username == ADMIN_USERNAME
    assert invalid.status_code == 401
    assert json.loads(invalid.body) == {"valid": False, "error": "Invalid token"}


def test_register_endpoint_returns_public_user(tmp_path: Path) -> None:
    router, _, _ = _auth_router(tmp_path)

    response = _endpoint(router, "/register")(
        RegisterRequest(username="olivia", email="olivia@example.com", password="pw")
    )
    body = response.model_dump(by_alias=True)

    assert body["message"] == "User registered successfully"
    assert body["user"]["role"] == "user"
    assert "createdAt" in body["user"]
    assert "passwordHash" not in body["user"]


def test_password_reset_endpoints_round_trip(tmp_path: Path) -> None:
    service, _, _ = build_services(tmp_path)
    router = create_password_reset_router(service)

    reply = _endpoint(router, "/password-reset/request")(
        PasswordResetRequest(email=ADMIN_EMAIL)
    )
    assert reply.token is not None
    valid = _endpoint(router, "/password-reset/validate")(TokenRequest(token=reply.token))
    done = _endpoint(router, "/password-reset/reset")(
        PasswordResetPerformRequest(token=reply.token, password="fresh-pw")
    )

    assert valid.valid is True
    assert done.message == "Password reset successful"
    with pytest.raises(ApiError) as exc:
        _endpoint(router, "/password-reset/validate")(TokenRequest(token=reply.token))
    assert exc.value.status_code == 400
    assert service.login(ADMIN_USERNAME, "fresh-pw").user.username == ADMIN_USERNAME


def test_password_reset_request_replies_identically_in_production(tmp_path: Path) -> None:
    service, _, _ = build_services(tmp_path, environment="production")
    request_reset = _endpoint(create_password_reset_router(service), "/password-reset/request")

    known = request_reset(PasswordResetRequest(email=ADMIN_EMAIL))
    unknown = request_reset(PasswordResetRequest(email="ghost@example.com"))

    assert known.model_dump_json(exclude_none=True) == unknown.model_dump_json(
        exclude_none=True
    )
