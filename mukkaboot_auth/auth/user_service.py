"""User registration, own-profile management and admin user CRUD."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from mukkaboot_auth.api.errors import (
    duplicate_user,
    feature_disabled,
    user_not_found,
    validation_error,
)
from mukkaboot_auth.auth.models import USER_ROLES, User
from mukkaboot_auth.auth.repository import (
    AuthRepositories,
    DuplicateKeyError,
    RecordNotFoundError,
)
from mukkaboot_auth.core.config import AppConfig
from mukkaboot_auth.core.security import hash_password, verify_password

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid user data"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    message = str(first.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{field}: {message}" if field else message


class UserService:
    """User record management on top of the credential store."""

    def __init__(self, repos: AuthRepositories, config: AppConfig) -> None:
        self._repos = repos
        self._config = config

    def _hash(self, password: str) -> str:
        return hash_password(password, self._config.auth.password_hash_rounds)

    def _create(self, **fields: Any) -> User:
        try:
            user = User(**fields)
        except ValidationError as exc:
            raise validation_error(_first_error(exc)) from exc

        users = self._repos.users
        if (
            users.find_by_username(user.username) is not None
            or users.find_by_email(user.email) is not None
        ):
            raise duplicate_user()
        try:
            return users.create(user)
        except DuplicateKeyError as exc:
            raise duplicate_user() from exc

    def _update(self, user_id: str, fields: dict[str, Any]) -> User:
        try:
            return self._repos.users.update(user_id, fields)
        except RecordNotFoundError as exc:
            raise user_not_found() from exc
        except DuplicateKeyError as exc:
            raise duplicate_user() from exc
        except ValidationError as exc:
            raise validation_error(_first_error(exc)) from exc

    def register(self, username: str, email: str, password: str) -> User:
        """Self-service sign-up; new users always get the ``user`` role."""
        if not self._config.features.allow_user_registration:
            raise feature_disabled("User registration is disabled")
        user = self._create(
            username=username,
            email=email,
            password_hash=self._hash(password),
            role="user",
            active=True,
            verified=not self._config.features.use_email_verification,
        )
        LOGGER.info("user_registered", extra={"user_id": user.id})
        return user

    def get_user(self, user_id: str) -> User:
        user = self._repos.users.find_by_id(user_id)
        if user is None:
            raise user_not_found()
        return user

    def update_profile(
        self,
        user_id: str,
        *,
        email: str | None = None,
        current_password: str | None = None,
        new_password: str | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> User:
        """Update own e-mail, password (with current password) and preferences."""
        user = self.get_user(user_id)
        updates: dict[str, Any] = {}
        if email:
            updates["email"] = email
        if current_password and new_password:
            if not verify_password(current_password, user.password_hash):
                raise validation_error("Current password is incorrect")
            updates["password_hash"] = self._hash(new_password)
        elif new_password:
            raise validation_error("Current password is required to set a new password")
        if preferences:
            updates["preferences"] = {**user.preferences.model_dump(), **preferences}
        if not updates:
            return user
        return self._update(user_id, updates)

    def list_users(
        self,
        *,
        role: str | None = None,
        active: bool | None = None,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[list[User], int]:
        """Return one page of users, newest first, and the filtered total."""
        skip = max(0, skip)
        limit = min(max(0, limit), MAX_PAGE_SIZE)
        users = self._repos.users.list(role=role, active=active, skip=skip, limit=limit)
        total = self._repos.users.count(role=role, active=active)
        return users, total

    def create_user(
        self, username: str, email: str, password: str, role: str = "user"
    ) -> User:
        if role not in USER_ROLES:
            raise validation_error("Invalid role")
        user = self._create(
            username=username,
            email=email,
            password_hash=self._hash(password),
            role=role,
            active=True,
            verified=True,
        )
        LOGGER.info("user_created", extra={"user_id": user.id})
        return user

    def update_user(
        self,
        user_id: str,
        *,
        email: str | None = None,
        role: str | None = None,
        active: bool | None = None,
        verified: bool | None = None,
        password: str | None = None,
    ) -> User:
        """Admin update; deactivating a user also revokes their refresh tokens."""
        if role is not None and role not in USER_ROLES:
            raise validation_error("Invalid role")
        updates: dict[str, Any] = {}
        if email:
            updates["email"] = email
        if role:
            updates["role"] = role
        if active is not None:
            updates["active"] = active
        if verified is not None:
            updates["verified"] = verified
        if password:
            updates["password_hash"] = self._hash(password)
        if not updates:
            return self.get_user(user_id)

        user = self._update(user_id, updates)
        if active is False:
            revoked = self._repos.refresh_tokens.revoke_all_for_user(user_id)
            LOGGER.info("user_deactivated", extra={"user_id": user_id, "count": revoked})
        return user

    def delete_user(self, actor_id: str, user_id: str) -> None:
        """Delete a user and every token issued to them."""
        if actor_id == user_id:
            raise validation_error("Cannot delete your own account")
        if not self._repos.users.delete(user_id):
            raise user_not_found()
        refresh_deleted = self._repos.refresh_tokens.delete_all_for_user(user_id)
        self._repos.reset_tokens.delete_all_for_user(user_id)
        LOGGER.info("user_deleted", extra={"user_id": user_id, "count": refresh_deleted})
