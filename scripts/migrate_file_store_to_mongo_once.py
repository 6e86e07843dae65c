#!/usr/bin/env python3
"""One-shot migration of the JSON auth store (users and tokens) into MongoDB."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from mukkaboot_auth.auth.file_store import (
    REFRESH_TOKENS_KEY,
    RESET_TOKENS_KEY,
    USERS_KEY,
    JsonAuthDocument,
)
from mukkaboot_auth.auth.models import PasswordResetToken, RefreshToken, User
from mukkaboot_auth.auth.mongo_store import connect_mongo_repositories
from mukkaboot_auth.auth.repository import AuthRepositories, DuplicateKeyError

DEFAULT_USERS_FILE = Path("runtime") / "auth_store" / "users.json"
DEFAULT_DB_NAME = "mukkaboot"
MAX_PREVIEW_ITEMS = 10


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Check and migrate the JSON auth store into MongoDB."
    )
    parser.add_argument(
        "--users-file",
        type=Path,
        default=DEFAULT_USERS_FILE,
        help="Path to the JSON auth store.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only print a report of users missing in MongoDB.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print the migration plan without writing into MongoDB.",
    )
    return parser.parse_args()


def _load_source(users_file: Path) -> tuple[list[User], list[Any], int]:
    """Return valid users, valid token records and the invalid row count."""
    if not users_file.exists():
        return [], [], 0
    document = JsonAuthDocument(users_file)
    data = document.read(lambda payload: payload)

    invalid_count = 0
    users: list[User] = []
    for row in data[USERS_KEY]:
        try:
            users.append(User.model_validate(row))
        except ValidationError:
            invalid_count += 1

    tokens: list[Any] = []
    for key, model in ((REFRESH_TOKENS_KEY, RefreshToken), (RESET_TOKENS_KEY, PasswordResetToken)):
        for rows in data[key].values():
            for row in rows:
                try:
                    tokens.append(model.model_validate(row))
                except ValidationError:
                    invalid_count += 1
    return users, tokens, invalid_count


def _missing_users(users: list[User], repos: AuthRepositories) -> list[User]:
    return [user for user in users if repos.users.find_by_id(user.id) is None]


def _migrate(users: list[User], tokens: list[Any], repos: AuthRepositories) -> tuple[int, int]:
    """Insert users and tokens, skipping rows that already exist."""
    inserted_users = 0
    for user in users:
        try:
            repos.users.create(user)
            inserted_users += 1
        except DuplicateKeyError:
            continue

    inserted_tokens = 0
    for record in tokens:
        target = (
            repos.refresh_tokens if isinstance(record, RefreshToken) else repos.reset_tokens
        )
        try:
            target.create(record)
            inserted_tokens += 1
        except DuplicateKeyError:
            continue
    return inserted_users, inserted_tokens


def main() -> int:
    """Execute check or migration flow."""
    load_dotenv()
    args = _parse_args()
    mongo_uri = os.getenv("MONGODB_URI", "").strip()
    mongo_db = os.getenv("MONGODB_DB", DEFAULT_DB_NAME).strip() or DEFAULT_DB_NAME

    users, tokens, invalid_count = _load_source(args.users_file)

    repos = None
    try:
        repos = connect_mongo_repositories(mongo_uri, mongo_db)
        missing = _missing_users(users, repos)

        print(f"Source file: {args.users_file}")
        print(f"Source valid users: {len(users)}")
        print(f"Source valid tokens: {len(tokens)}")
        print(f"Source invalid rows skipped: {invalid_count}")
        print(f"Users missing in target: {len(missing)}")
        if missing:
            preview = ", ".join(user.username for user in missing[:MAX_PREVIEW_ITEMS])
            print(f"Missing preview: {preview}")
        if args.check or args.dry_run:
            print(f"Mode: {'check' if args.check else 'dry-run'}")
            return 0

        inserted_users, inserted_tokens = _migrate(users, tokens, repos)
        print(f"Inserted users: {inserted_users}")
        print(f"Inserted tokens: {inserted_tokens}")
        print(f"Target users total now: {repos.users.count()}")
        return 0
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if repos is not None:
            repos.close()


if __name__ == "__main__":
    raise SystemExit(main())
