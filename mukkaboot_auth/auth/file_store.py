"""Flat-file auth storage: one JSON document holding users and token maps.

The whole document lives in memory and is rewritten on every mutation.
All reads and read-modify-write cycles go through a single in-process lock,
so token state transitions are atomic within one process. Concurrent
writers in other processes are not coordinated.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Callable, TypeVar

from pydantic import ValidationError

from mukkaboot_auth.auth.models import (
    PasswordResetToken,
    RefreshToken,
    User,
    normalize_email,
    utc_now,
)
from mukkaboot_auth.auth.repository import (
    AuthRepositories,
    DuplicateKeyError,
    RecordNotFoundError,
    StorageError,
)

LOGGER = logging.getLogger(__name__)

USERS_KEY = "users"
REFRESH_TOKENS_KEY = "refreshTokens"
RESET_TOKENS_KEY = "passwordResetTokens"

T = TypeVar("T")


def _empty_document() -> dict[str, Any]:
    return {USERS_KEY: [], REFRESH_TOKENS_KEY: {}, RESET_TOKENS_KEY: {}}


class JsonAuthDocument:
    """In-memory JSON document persisted with whole-file overwrites."""

    def __init__(self, path: Path) -> None:
        """Load document from ``path``, starting empty when missing or corrupted."""
        self._path = path
        self._lock = RLock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        """Read document from disk with empty fallback."""
        if not self._path.exists():
            return _empty_document()
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning(
                "auth_store_unreadable",
                extra={"operation": "load", "path": str(self._path)},
            )
            return _empty_document()
        if not isinstance(payload, dict):
            return _empty_document()

        if not isinstance(payload.get(USERS_KEY), list):
            payload[USERS_KEY] = []
        for key in (REFRESH_TOKENS_KEY, RESET_TOKENS_KEY):
            if not isinstance(payload.get(key), dict):
                payload[key] = {}
        return payload

    def _save(self, data: dict[str, Any]) -> None:
        """Persist whole document via temp file replace."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError("save", f"Unable to write {self._path.name}") from exc

    def read(self, fn: Callable[[dict[str, Any]], T]) -> T:
        """Run read-only ``fn`` against the document under the lock."""
        with self._lock:
            return fn(self._data)

    def mutate(self, fn: Callable[[dict[str, Any]], T]) -> T:
        """Run ``fn`` on a copy under the lock; keep the copy only once it is on disk."""
        with self._lock:
            draft = copy.deepcopy(self._data)
            result = fn(draft)
            self._save(draft)
            self._data = draft
            return result


def _iter_token_rows(section: dict[str, list[dict[str, Any]]]):
    for rows in section.values():
        yield from rows


def _find_token_row(
    section: dict[str, list[dict[str, Any]]], token: str
) -> dict[str, Any] | None:
    for row in _iter_token_rows(section):
        if row.get("token") == token:
            return row
    return None


def _parse_dt(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FileUserRepository:
    """User repository over the shared JSON document."""

    def __init__(self, document: JsonAuthDocument) -> None:
        self._doc = document

    @staticmethod
    def _to_user(row: dict[str, Any]) -> User | None:
        try:
            return User.model_validate(row)
        except ValidationError:
            LOGGER.warning("auth_store_invalid_user", extra={"operation": "load"})
            return None

    def _find(self, predicate: Callable[[dict[str, Any]], bool]) -> User | None:
        def lookup(data: dict[str, Any]) -> User | None:
            for row in data[USERS_KEY]:
                if predicate(row):
                    return self._to_user(row)
            return None

        return self._doc.read(lookup)

    def find_by_username(self, username: str) -> User | None:
        key = username.strip()
        return self._find(lambda row: row.get("username") == key)

    def find_by_email(self, email: str) -> User | None:
        key = normalize_email(email)
        return self._find(lambda row: normalize_email(str(row.get("email", ""))) == key)

    def find_by_id(self, user_id: str) -> User | None:
        return self._find(lambda row: row.get("id") == user_id)

    @staticmethod
    def _assert_unique(
        rows: list[dict[str, Any]], user: User, *, operation: str
    ) -> None:
        for row in rows:
            if row.get("id") == user.id:
                continue
            if row.get("username") == user.username:
                raise DuplicateKeyError(operation, "username")
            if normalize_email(str(row.get("email", ""))) == user.email:
                raise DuplicateKeyError(operation, "email")

    def create(self, user: User) -> User:
        def insert(data: dict[str, Any]) -> User:
            rows = data[USERS_KEY]
            if any(row.get("id") == user.id for row in rows):
                raise DuplicateKeyError("create_user", "id")
            self._assert_unique(rows, user, operation="create_user")
            rows.append(user.to_json_document())
            return user

        return self._doc.mutate(insert)

    def update(self, user_id: str, fields: dict[str, object]) -> User:
        def apply(data: dict[str, Any]) -> User:
            rows = data[USERS_KEY]
            for index, row in enumerate(rows):
                if row.get("id") != user_id:
                    continue
                current = User.model_validate(row)
                updated = User.model_validate(
                    {**current.model_dump(), **fields, "updated_at": utc_now()}
                )
                self._assert_unique(rows, updated, operation="update_user")
                rows[index] = updated.to_json_document()
                return updated
            raise RecordNotFoundError("update_user", f"User not found: {user_id}")

        return self._doc.mutate(apply)

    def update_last_login(self, user_id: str) -> None:
        def touch(data: dict[str, Any]) -> None:
            now = utc_now().isoformat()
            for row in data[USERS_KEY]:
                if row.get("id") == user_id:
                    row["lastLogin"] = now

        self._doc.mutate(touch)

    def delete(self, user_id: str) -> bool:
        def remove(data: dict[str, Any]) -> bool:
            rows = data[USERS_KEY]
            remaining = [row for row in rows if row.get("id") != user_id]
            data[USERS_KEY] = remaining
            return len(remaining) != len(rows)

        return self._doc.mutate(remove)

    @staticmethod
    def _matches(row: dict[str, Any], role: str | None, active: bool | None) -> bool:
        if role is not None and row.get("role") != role:
            return False
        if active is not None and bool(row.get("active", True)) != active:
            return False
        return True

    def list(
        self,
        *,
        role: str | None = None,
        active: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[User]:
        def select(data: dict[str, Any]) -> list[User]:
            users = [
                user
                for user in (
                    self._to_user(row)
                    for row in data[USERS_KEY]
                    if self._matches(row, role, active)
                )
                if user is not None
            ]
            users.sort(key=lambda user: user.created_at, reverse=True)
            start = max(0, skip)
            return users[start : start + max(0, limit)]

        return self._doc.read(select)

    def count(self, *, role: str | None = None, active: bool | None = None) -> int:
        return self._doc.read(
            lambda data: sum(1 for row in data[USERS_KEY] if self._matches(row, role, active))
        )


class _FileTokenRepository:
    """Shared token-map operations for refresh and reset tokens."""

    section_key = ""
    model: Any = None

    def __init__(self, document: JsonAuthDocument) -> None:
        self._doc = document

    def _section(self, data: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
        return data[self.section_key]

    def create(self, record):
        def insert(data: dict[str, Any]):
            section = self._section(data)
            if _find_token_row(section, record.token) is not None:
                raise DuplicateKeyError("create_token", "token")
            section.setdefault(record.user_id, []).append(record.to_json_document())
            return record

        return self._doc.mutate(insert)

    def find_by_token(self, token: str):
        def lookup(data: dict[str, Any]):
            row = _find_token_row(self._section(data), token)
            return self.model.model_validate(row) if row is not None else None

        return self._doc.read(lookup)

    def find_latest_for_user(self, user_id: str):
        def lookup(data: dict[str, Any]):
            rows = self._section(data).get(user_id) or []
            if not rows:
                return None
            records = [self.model.model_validate(row) for row in rows]
            return max(records, key=lambda record: record.created_at)

        return self._doc.read(lookup)

    def _set_flag(self, token: str, flag: str, now: datetime | None):
        """Set ``flag`` on a token; with ``now`` only when still usable."""

        def apply(data: dict[str, Any]):
            row = _find_token_row(self._section(data), token)
            if row is None:
                return None
            record = self.model.model_validate(row)
            if now is not None and not record.is_usable(now):
                return None
            row[flag] = True
            return self.model.model_validate(row)

        return self._doc.mutate(apply)

    def delete_all_for_user(self, user_id: str) -> int:
        def remove(data: dict[str, Any]) -> int:
            rows = self._section(data).pop(user_id, None) or []
            return len(rows)

        return self._doc.mutate(remove)

    def delete_expired(self, now: datetime) -> int:
        def sweep(data: dict[str, Any]) -> int:
            section = self._section(data)
            deleted = 0
            for user_id in list(section.keys()):
                rows = section[user_id]
                kept = [row for row in rows if _parse_dt(row.get("expires")) > now]
                deleted += len(rows) - len(kept)
                if kept:
                    section[user_id] = kept
                else:
                    del section[user_id]
            return deleted

        return self._doc.mutate(sweep)


class FileRefreshTokenRepository(_FileTokenRepository):
    """Refresh token repository over the shared JSON document."""

    section_key = REFRESH_TOKENS_KEY
    model = RefreshToken

    def revoke(self, token: str) -> RefreshToken | None:
        return self._set_flag(token, "revoked", None)

    def revoke_if_usable(self, token: str, now: datetime) -> RefreshToken | None:
        return self._set_flag(token, "revoked", now)

    def revoke_all_for_user(self, user_id: str) -> int:
        def apply(data: dict[str, Any]) -> int:
            revoked = 0
            for row in self._section(data).get(user_id) or []:
                if not row.get("revoked"):
                    row["revoked"] = True
                    revoked += 1
            return revoked

        return self._doc.mutate(apply)


class FilePasswordResetTokenRepository(_FileTokenRepository):
    """Password reset token repository over the shared JSON document."""

    section_key = RESET_TOKENS_KEY
    model = PasswordResetToken

    def mark_used(self, token: str) -> PasswordResetToken | None:
        return self._set_flag(token, "used", None)

    def mark_used_if_usable(
        self, token: str, now: datetime
    ) -> PasswordResetToken | None:
        return self._set_flag(token, "used", now)


def open_file_repositories(path: Path) -> AuthRepositories:
    """Open all auth repositories over a single JSON document."""
    document = JsonAuthDocument(path)
    return AuthRepositories(
        users=FileUserRepository(document),
        refresh_tokens=FileRefreshTokenRepository(document),
        reset_tokens=FilePasswordResetTokenRepository(document),
        backend="file",
    )
