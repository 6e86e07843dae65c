"""Versioned MongoDB schema migrations for auth collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from mukkaboot_auth.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20261001_01_unique_indexes(db: Any) -> None:
    db["auth_users"].create_index("id", unique=True)
    db["auth_users"].create_index("username", unique=True)
    db["auth_users"].create_index("email", unique=True)
    db["auth_users"].create_index("createdAt")
    db["auth_refresh_tokens"].create_index("token", unique=True)
    db["auth_refresh_tokens"].create_index("userId")
    db["auth_password_reset_tokens"].create_index("token", unique=True)
    db["auth_password_reset_tokens"].create_index("userId")


def _migration_20261001_02_token_ttl(db: Any) -> None:
    db["auth_refresh_tokens"].create_index(
        "expires",
        expireAfterSeconds=0,
        name="idx_auth_refresh_tokens_expires_ttl",
    )
    db["auth_password_reset_tokens"].create_index(
        "expires",
        expireAfterSeconds=0,
        name="idx_auth_password_reset_tokens_expires_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20261001_01_unique_indexes", _migration_20261001_01_unique_indexes),
    ("20261001_02_token_ttl", _migration_20261001_02_token_ttl),
]


def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending migrations to ``db`` and return the applied ids."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        LOGGER.info("mongo_migration_applied", extra={"operation": migration_id})
        applied.append(migration_id)
    return applied
