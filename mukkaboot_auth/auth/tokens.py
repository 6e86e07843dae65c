"""Token issuer for signed access tokens and opaque refresh/reset tokens."""

from __future__ import annotations

import secrets
import time
import uuid
from datetime import timedelta
from typing import Any

from mukkaboot_auth.auth.models import PasswordResetToken, RefreshToken, User, utc_now
from mukkaboot_auth.core.config import AuthConfig
from mukkaboot_auth.core.security import (
    TokenInvalidError,
    build_signed_token,
    decode_signed_token,
)

REFRESH_TOKEN_BYTES = 40
RESET_TOKEN_BYTES = 32


class TokenIssuer:
    """Mint and verify tokens; holds no per-token state."""

    def __init__(self, config: AuthConfig) -> None:
        self._config = config

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    def issue_access_token(self, user: User) -> str:
        """Return a signed access token carrying ``id``, ``username`` and ``role``."""
        now_ts = int(time.time())
        payload = {
            "iss": self._config.issuer,
            "id": user.id,
            "username": user.username,
            "role": user.role,
            "type": "access",
            "iat": now_ts,
            "exp": now_ts + self._config.access_token_ttl_seconds,
            "jti": uuid.uuid4().hex,
        }
        return build_signed_token(payload, self._config.secret_key)

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """Return decoded identity claims.

        Raises ``TokenExpiredError`` or ``TokenInvalidError``.
        """
        payload = decode_signed_token(token, self._config.secret_key)
        if str(payload.get("iss") or "") != self._config.issuer:
            raise TokenInvalidError("Invalid token issuer")
        if str(payload.get("type") or "") != "access":
            raise TokenInvalidError("Invalid token type")
        if not payload.get("id"):
            raise TokenInvalidError("Token has no subject")
        return {
            "id": str(payload["id"]),
            "username": str(payload.get("username") or ""),
            "role": str(payload.get("role") or "user"),
        }

    def issue_refresh_token(self, user_id: str, created_by_ip: str = "") -> RefreshToken:
        """Return a new opaque refresh token record; identity lives only in storage."""
        now = utc_now()
        return RefreshToken(
            token=secrets.token_hex(REFRESH_TOKEN_BYTES),
            user_id=user_id,
            expires=now + timedelta(seconds=self._config.refresh_token_ttl_seconds),
            created_by_ip=created_by_ip,
            created_at=now,
        )

    def issue_password_reset_token(self, user_id: str) -> PasswordResetToken:
        now = utc_now()
        return PasswordResetToken(
            token=secrets.token_hex(RESET_TOKEN_BYTES),
            user_id=user_id,
            expires=now + timedelta(seconds=self._config.reset_token_ttl_seconds),
            created_at=now,
        )
