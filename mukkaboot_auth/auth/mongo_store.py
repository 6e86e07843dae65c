"""MongoDB auth storage: one document per user and per token."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import pymongo
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import PyMongoError

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
from mukkaboot_auth.core.mongo_migrations import apply_mongo_migrations

LOGGER = logging.getLogger(__name__)

USERS_COLLECTION = "auth_users"
REFRESH_TOKENS_COLLECTION = "auth_refresh_tokens"
RESET_TOKENS_COLLECTION = "auth_password_reset_tokens"

_NO_ID = {"_id": 0}


def _duplicate_field(exc: MongoDuplicateKeyError) -> str:
    key_value = (exc.details or {}).get("keyValue") or {}
    return next(iter(key_value), "")


def _to_db_fields(fields: dict[str, object]) -> dict[str, object]:
    aliases = {name: info.alias or name for name, info in User.model_fields.items()}
    return {aliases.get(key, key): value for key, value in fields.items()}


class MongoUserRepository:
    """User repository backed by a MongoDB collection."""

    def __init__(self, collection: Collection) -> None:
        self._users = collection

    def _find_one(self, query: dict[str, Any], operation: str) -> User | None:
        try:
            doc = self._users.find_one(query, _NO_ID)
        except PyMongoError as exc:
            raise StorageError(operation) from exc
        return User.model_validate(doc) if doc else None

    def find_by_username(self, username: str) -> User | None:
        return self._find_one({"username": username.strip()}, "find_user_by_username")

    def find_by_email(self, email: str) -> User | None:
        return self._find_one({"email": normalize_email(email)}, "find_user_by_email")

    def find_by_id(self, user_id: str) -> User | None:
        return self._find_one({"id": user_id}, "find_user_by_id")

    def create(self, user: User) -> User:
        try:
            self._users.insert_one(user.to_document())
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError("create_user", _duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise StorageError("create_user") from exc
        return user

    def update(self, user_id: str, fields: dict[str, object]) -> User:
        current = self.find_by_id(user_id)
        if current is None:
            raise RecordNotFoundError("update_user", f"User not found: {user_id}")
        merged = User.model_validate(
            {**current.model_dump(), **fields, "updated_at": utc_now()}
        )
        changes = _to_db_fields(
            {key: getattr(merged, key) for key in (*fields.keys(), "updated_at")}
        )
        if "preferences" in changes:
            changes["preferences"] = merged.preferences.model_dump()
        try:
            doc = self._users.find_one_and_update(
                {"id": user_id},
                {"$set": changes},
                projection=_NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError("update_user", _duplicate_field(exc)) from exc
        except PyMongoError as exc:
            raise StorageError("update_user") from exc
        if doc is None:
            raise RecordNotFoundError("update_user", f"User not found: {user_id}")
        return User.model_validate(doc)

    def update_last_login(self, user_id: str) -> None:
        try:
            self._users.update_one({"id": user_id}, {"$set": {"lastLogin": utc_now()}})
        except PyMongoError as exc:
            raise StorageError("update_last_login") from exc

    def delete(self, user_id: str) -> bool:
        try:
            result = self._users.delete_one({"id": user_id})
        except PyMongoError as exc:
            raise StorageError("delete_user") from exc
        return result.deleted_count > 0

    @staticmethod
    def _filter(role: str | None, active: bool | None) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if role is not None:
            query["role"] = role
        if active is not None:
            query["active"] = active
        return query

    def list(
        self,
        *,
        role: str | None = None,
        active: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[User]:
        if limit <= 0:
            return []
        try:
            cursor = (
                self._users.find(self._filter(role, active), _NO_ID)
                .sort("createdAt", pymongo.DESCENDING)
                .skip(max(0, skip))
                .limit(limit)
            )
            return [User.model_validate(doc) for doc in cursor]
        except PyMongoError as exc:
            raise StorageError("list_users") from exc

    def count(self, *, role: str | None = None, active: bool | None = None) -> int:
        try:
            return int(self._users.count_documents(self._filter(role, active)))
        except PyMongoError as exc:
            raise StorageError("count_users") from exc


class _MongoTokenRepository:
    """Shared token operations for refresh and reset token collections."""

    model: Any = None
    flag = ""

    def __init__(self, collection: Collection) -> None:
        self._tokens = collection

    def create(self, record):
        try:
            self._tokens.insert_one(record.to_document())
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError("create_token", "token") from exc
        except PyMongoError as exc:
            raise StorageError("create_token") from exc
        return record

    def find_by_token(self, token: str):
        try:
            doc = self._tokens.find_one({"token": token}, _NO_ID)
        except PyMongoError as exc:
            raise StorageError("find_token") from exc
        return self.model.model_validate(doc) if doc else None

    def find_latest_for_user(self, user_id: str):
        try:
            doc = self._tokens.find_one(
                {"userId": user_id},
                _NO_ID,
                sort=[("createdAt", pymongo.DESCENDING)],
            )
        except PyMongoError as exc:
            raise StorageError("find_latest_token") from exc
        return self.model.model_validate(doc) if doc else None

    def _set_flag(self, token: str, now: datetime | None):
        """Atomically set the state flag; with ``now`` only while usable."""
        query: dict[str, Any] = {"token": token}
        if now is not None:
            query[self.flag] = False
            query["expires"] = {"$gt": now}
        try:
            doc = self._tokens.find_one_and_update(
                query,
                {"$set": {self.flag: True}},
                projection=_NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise StorageError(f"set_token_{self.flag}") from exc
        return self.model.model_validate(doc) if doc else None

    def delete_all_for_user(self, user_id: str) -> int:
        try:
            return int(self._tokens.delete_many({"userId": user_id}).deleted_count)
        except PyMongoError as exc:
            raise StorageError("delete_user_tokens") from exc

    def delete_expired(self, now: datetime) -> int:
        try:
            return int(self._tokens.delete_many({"expires": {"$lt": now}}).deleted_count)
        except PyMongoError as exc:
            raise StorageError("delete_expired_tokens") from exc


class MongoRefreshTokenRepository(_MongoTokenRepository):
    """Refresh token repository backed by a MongoDB collection."""

    model = RefreshToken
    flag = "revoked"

    def revoke(self, token: str) -> RefreshToken | None:
        return self._set_flag(token, None)

    def revoke_if_usable(self, token: str, now: datetime) -> RefreshToken | None:
        return self._set_flag(token, now)

    def revoke_all_for_user(self, user_id: str) -> int:
        try:
            result = self._tokens.update_many(
                {"userId": user_id, "revoked": False}, {"$set": {"revoked": True}}
            )
        except PyMongoError as exc:
            raise StorageError("revoke_user_tokens") from exc
        return int(result.modified_count)


class MongoPasswordResetTokenRepository(_MongoTokenRepository):
    """Password reset token repository backed by a MongoDB collection."""

    model = PasswordResetToken
    flag = "used"

    def mark_used(self, token: str) -> PasswordResetToken | None:
        return self._set_flag(token, None)

    def mark_used_if_usable(
        self, token: str, now: datetime
    ) -> PasswordResetToken | None:
        return self._set_flag(token, now)


def connect_mongo_repositories(mongo_uri: str, mongo_db: str) -> AuthRepositories:
    """Connect to MongoDB, apply index migrations and build repositories."""
    if not mongo_uri:
        raise StorageError("connect", "MONGODB_URI is required when AUTH_USE_MONGODB is on")
    client: Any = pymongo.MongoClient(
        mongo_uri, serverSelectionTimeoutMS=3000, tz_aware=True
    )
    try:
        client.admin.command("ping")
        db = client[mongo_db]
        apply_mongo_migrations(db)
    except PyMongoError as exc:
        client.close()
        raise StorageError("connect", "Unable to reach MongoDB") from exc

    return AuthRepositories(
        users=MongoUserRepository(db[USERS_COLLECTION]),
        refresh_tokens=MongoRefreshTokenRepository(db[REFRESH_TOKENS_COLLECTION]),
        reset_tokens=MongoPasswordResetTokenRepository(db[RESET_TOKENS_COLLECTION]),
        backend="mongodb",
        on_close=client.close,
    )
