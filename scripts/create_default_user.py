#!/usr/bin/env python3
"""Create a user account in the configured auth storage backend."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv
from fastapi import HTTPException

from mukkaboot_auth.auth.repository import build_auth_repositories
from mukkaboot_auth.auth.user_service import UserService
from mukkaboot_auth.core.config import AppConfig

APP_ROOT = Path(__file__).resolve().parents[1]


def _parse_args(config: AppConfig) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Create a user (defaults to the bootstrap admin account)."
    )
    parser.add_argument("--username", default=config.auth.admin_username)
    parser.add_argument("--email", default=config.auth.admin_email)
    parser.add_argument("--password", default=config.auth.admin_password)
    parser.add_argument("--role", default="admin", choices=["admin", "user"])
    return parser.parse_args()


def main() -> int:
    """Create the account, reporting an existing one as success."""
    load_dotenv()
    config = AppConfig.from_env()
    args = _parse_args(config)

    repos = None
    try:
        repos = build_auth_repositories(config.storage, app_root=APP_ROOT)
        existing = repos.users.find_by_username(args.username)
        if existing is not None:
            print(f"User already exists: {existing.username} ({existing.id})")
            return 0
        user = UserService(repos, config).create_user(
            args.username, args.email, args.password, args.role
        )
        print(f"Backend: {repos.backend}")
        print(f"Created {user.role} user: {user.username} <{user.email}> ({user.id})")
        return 0
    except HTTPException as exc:
        print(f"ERROR: {exc.detail['message']}", file=sys.stderr)
        return 1
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if repos is not None:
            repos.close()


if __name__ == "__main__":
    raise SystemExit(main())
