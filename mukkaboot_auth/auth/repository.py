"""Repository contracts for auth users and token persistence.

Two interchangeable backends implement these contracts: a single JSON
document on disk (``file_store``) and MongoDB (``mongo_store``). The backend
is chosen once at startup by ``build_auth_repositories``; services only see
the protocols below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from mukkaboot_auth.auth.models import PasswordResetToken, RefreshToken, User
from mukkaboot_auth.core.config import StorageConfig

LOGGER = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Backend failure (I/O, driver) while executing a repository operation."""

    def __init__(self, operation: str, message: str = "") -> None:
        super().__init__(message or f"Storage operation failed: {operation}")
        self.operation = operation


class DuplicateKeyError(StorageError):
    """Unique username/email/token constraint violated."""

    def __init__(self, operation: str, field: str = "") -> None:
        super().__init__(operation, f"Duplicate value for {field or 'unique key'}")
        self.field = field


class RecordNotFoundError(StorageError):
    """Record addressed by id does not exist."""


class UserRepository(Protocol):
    def find_by_username(self, username: str) -> User | None: ...

    def find_by_email(self, email: str) -> User | None: ...

    def find_by_id(self, user_id: str) -> User | None: ...

    def create(self, user: User) -> User: ...

    def update(self, user_id: str, fields: dict[str, object]) -> User: ...

    def update_last_login(self, user_id: str) -> None: ...

    def delete(self, user_id: str) -> bool: ...

    def list(
        self,
        *,
        role: str | None = None,
        active: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[User]: ...

    def count(self, *, role: str | None = None, active: bool | None = None) -> int: ...


class RefreshTokenRepository(Protocol):
    def create(self, record: RefreshToken) -> RefreshToken: ...

    def find_by_token(self, token: str) -> RefreshToken | None: ...

    def find_latest_for_user(self, user_id: str) -> RefreshToken | None: ...

    def revoke(self, token: str) -> RefreshToken | None: ...

    def revoke_if_usable(self, token: str, now: datetime) -> RefreshToken | None: ...

    def revoke_all_for_user(self, user_id: str) -> int: ...

    def delete_all_for_user(self, user_id: str) -> int: ...

    def delete_expired(self, now: datetime) -> int: ...


class PasswordResetTokenRepository(Protocol):
    def create(self, record: PasswordResetToken) -> PasswordResetToken: ...

    def find_by_token(self, token: str) -> PasswordResetToken | None: ...

    def find_latest_for_user(self, user_id: str) -> PasswordResetToken | None: ...

    def mark_used(self, token: str) -> PasswordResetToken | None: ...

    def mark_used_if_usable(
        self, token: str, now: datetime
    ) -> PasswordResetToken | None: ...

    def delete_all_for_user(self, user_id: str) -> int: ...

    def delete_expired(self, now: datetime) -> int: ...


@dataclass
class AuthRepositories:
    """Process-scoped bundle of repositories sharing one backend."""

    users: UserRepository
    refresh_tokens: RefreshTokenRepository
    reset_tokens: PasswordResetTokenRepository
    backend: str
    on_close: Callable[[], None] = lambda: None

    def close(self) -> None:
        """Release backend resources."""
        self.on_close()


def build_auth_repositories(
    config: StorageConfig, *, app_root: Path
) -> AuthRepositories:
    """Build repositories for the configured storage backend."""
    if config.use_mongodb:
        from mukkaboot_auth.auth.mongo_store import connect_mongo_repositories

        LOGGER.info("auth_storage_selected", extra={"operation": "mongodb"})
        return connect_mongo_repositories(config.mongodb_uri, config.mongodb_db)

    from mukkaboot_auth.auth.file_store import open_file_repositories

    users_file = Path(config.users_file_path)
    if not users_file.is_absolute():
        users_file = app_root / users_file
    LOGGER.info("auth_storage_selected", extra={"operation": "file"})
    return open_file_repositories(users_file)
