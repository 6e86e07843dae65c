"""Authentication service for login, refresh, logout and password reset."""

from __future__ import annotations

import logging
import secrets
from typing import Any

from pydantic import ValidationError

from mukkaboot_auth.api.contracts import (
    LoginResponse,
    PasswordResetRequestResponse,
    SessionUserResponse,
    TokenPairResponse,
)
from mukkaboot_auth.api.errors import (
    ApiError,
    ApiErrorCode,
    feature_disabled,
    invalid_credentials,
    invalid_or_expired_token,
    user_not_found,
)
from mukkaboot_auth.auth.models import User, utc_now
from mukkaboot_auth.auth.repository import AuthRepositories, RecordNotFoundError
from mukkaboot_auth.auth.tokens import TokenIssuer
from mukkaboot_auth.core.config import AppConfig
from mukkaboot_auth.core.security import (
    TokenExpiredError,
    TokenInvalidError,
    hash_password,
    verify_password,
)

LOGGER = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = (
    "If your email is registered, you will receive a password reset link"
)


class AuthService:
    """Session protocol: token issuance, rotation and revocation."""

    def __init__(
        self, repos: AuthRepositories, issuer: TokenIssuer, config: AppConfig
    ) -> None:
        """Initialize service dependencies."""
        self._repos = repos
        self._issuer = issuer
        self._config = config
        # Unknown usernames are checked against this so both failure paths cost one hash.
        self._unknown_user_hash = hash_password(
            secrets.token_hex(16), config.auth.password_hash_rounds
        )

    def bootstrap_admin_user(self) -> None:
        """Ensure bootstrap admin user exists from environment values."""
        auth = self._config.auth
        if not auth.admin_password:
            return
        users = self._repos.users
        if users.find_by_username(auth.admin_username) is not None:
            return
        if users.find_by_email(auth.admin_email) is not None:
            return

        try:
            admin = User(
                username=auth.admin_username,
                email=auth.admin_email,
                password_hash=hash_password(
                    auth.admin_password, auth.password_hash_rounds
                ),
                role="admin",
                active=True,
                verified=True,
            )
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors())
            LOGGER.error(
                "bootstrap_admin_invalid",
                extra={"operation": "bootstrap_admin", "detail": fields},
            )
            raise ValueError(
                "Invalid bootstrap admin settings (AUTH_ADMIN_USERNAME / "
                f"AUTH_ADMIN_EMAIL): {fields}"
            ) from exc

        admin = users.create(admin)
        LOGGER.info("bootstrap_admin_created", extra={"user_id": admin.id})

    def login(self, username: str, password: str, client_ip: str = "") -> LoginResponse:
        """Authenticate credentials and issue access/refresh token pair."""
        user = self._repos.users.find_by_username(username)
        if user is None or not user.active:
            verify_password(password, self._unknown_user_hash)
            raise invalid_credentials()
        if not verify_password(password, user.password_hash):
            raise invalid_credentials()

        access_token = self._issuer.issue_access_token(user)
        refresh = self._repos.refresh_tokens.create(
            self._issuer.issue_refresh_token(user.id, client_ip)
        )
        self._repos.users.update_last_login(user.id)
        LOGGER.info(
            "login_succeeded", extra={"user_id": user.id, "client_ip": client_ip}
        )
        return LoginResponse(
            access_token=access_token,
            refresh_token=refresh.token,
            user=SessionUserResponse(
                id=user.id, username=user.username, email=user.email, role=user.role
            ),
        )

    def refresh(self, token: str, client_ip: str = "") -> TokenPairResponse:
        """Exchange a usable refresh token for a new pair, revoking the old one."""
        now = utc_now()
        record = self._repos.refresh_tokens.find_by_token(token)
        if record is None or not record.is_usable(now):
            raise invalid_or_expired_token()

        user = self._repos.users.find_by_id(record.user_id)
        if user is None or not user.active:
            raise user_not_found(status_code=401)

        # The conditional revoke is the rotation point: a concurrent caller
        # holding the same token finds it already revoked and gets nothing.
        if self._repos.refresh_tokens.revoke_if_usable(token, now) is None:
            LOGGER.warning(
                "refresh_token_reuse_rejected",
                extra={"user_id": user.id, "client_ip": client_ip},
            )
            raise invalid_or_expired_token()

        access_token = self._issuer.issue_access_token(user)
        rotated = self._repos.refresh_tokens.create(
            self._issuer.issue_refresh_token(user.id, client_ip)
        )
        return TokenPairResponse(access_token=access_token, refresh_token=rotated.token)

    def logout(self, token: str) -> None:
        """Revoke the refresh token; unknown tokens are ignored."""
        record = self._repos.refresh_tokens.revoke(token)
        if record is not None:
            LOGGER.info("logout", extra={"user_id": record.user_id})

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """Validate access token and return identity claims without a storage lookup."""
        try:
            return self._issuer.verify_access_token(token)
        except TokenExpiredError as exc:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_TOKEN_EXPIRED,
                message="Token expired",
            ) from exc
        except TokenInvalidError as exc:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
                message="Invalid token",
            ) from exc

    def request_password_reset(self, email: str) -> PasswordResetRequestResponse:
        """Create a reset token for a registered e-mail; the reply never reveals which."""
        if not self._config.features.allow_password_reset:
            raise feature_disabled("Password reset is disabled")

        user = self._repos.users.find_by_email(email)
        if user is None or not user.active:
            return PasswordResetRequestResponse(message=PASSWORD_RESET_MESSAGE)

        record = self._repos.reset_tokens.create(
            self._issuer.issue_password_reset_token(user.id)
        )
        LOGGER.info("password_reset_requested", extra={"user_id": user.id})
        return PasswordResetRequestResponse(
            message=PASSWORD_RESET_MESSAGE,
            token=None if self._config.production else record.token,
        )

    def validate_reset_token(self, token: str) -> bool:
        record = self._repos.reset_tokens.find_by_token(token)
        return record is not None and record.is_usable()

    def perform_password_reset(self, token: str, new_password: str) -> None:
        """Replace the password and burn the single-use reset token."""
        if not self._config.features.allow_password_reset:
            raise feature_disabled("Password reset is disabled")

        now = utc_now()
        record = self._repos.reset_tokens.find_by_token(token)
        if record is None or not record.is_usable(now):
            raise invalid_or_expired_token(status_code=400)
        if self._repos.users.find_by_id(record.user_id) is None:
            raise user_not_found()

        password_hash = hash_password(new_password, self._config.auth.password_hash_rounds)
        if self._repos.reset_tokens.mark_used_if_usable(token, now) is None:
            raise invalid_or_expired_token(status_code=400)
        try:
            self._repos.users.update(record.user_id, {"password_hash": password_hash})
        except RecordNotFoundError as exc:
            raise user_not_found() from exc

        revoked = self._repos.refresh_tokens.revoke_all_for_user(record.user_id)
        LOGGER.info(
            "password_reset_completed",
            extra={"user_id": record.user_id, "count": revoked},
        )

    def sweep_expired_tokens(self) -> dict[str, int]:
        """Delete expired refresh and reset tokens; safe to run concurrently."""
        now = utc_now()
        refresh_deleted = self._repos.refresh_tokens.delete_expired(now)
        reset_deleted = self._repos.reset_tokens.delete_expired(now)
        LOGGER.info(
            "expired_tokens_swept",
            extra={"operation": "sweep", "count": refresh_deleted + reset_deleted},
        )
        return {"refresh_tokens": refresh_deleted, "reset_tokens": reset_deleted}
