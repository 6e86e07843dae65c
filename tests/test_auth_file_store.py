from __future__ import annotations

import json
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from mukkaboot_auth.auth.file_store import JsonAuthDocument, open_file_repositories
from mukkaboot_auth.auth.models import PasswordResetToken, RefreshToken, User, utc_now
from mukkaboot_auth.auth.repository import (
    DuplicateKeyError,
    RecordNotFoundError,
    StorageError,
    build_auth_repositories,
)
from tests.auth_helpers import build_config


def _user(username: str = "alice", email: str = "alice@example.com", **fields) -> User:
    return User(username=username, email=email, password_hash="hash", **fields)


def _refresh(token: str, user_id: str = "u1", *, ttl: int = 600) -> RefreshToken:
    return RefreshToken(
        token=token, user_id=user_id, expires=utc_now() + timedelta(seconds=ttl)
    )


def test_file_store_create_and_find_user_case_insensitive_email(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    created = repos.users.create(_user(email="Alice@Example.COM"))

    by_email = repos.users.find_by_email("ALICE@example.com")
    by_name = repos.users.find_by_username("alice")
    by_id = repos.users.find_by_id(created.id)

    assert created.email == "alice@example.com"
    assert by_email is not None and by_email.id == created.id
    assert by_name is not None and by_name.id == created.id
    assert by_id is not None and by_id.username == "alice"


def test_file_store_rejects_duplicate_username_and_email(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.users.create(_user())

    with pytest.raises(DuplicateKeyError) as by_name:
        repos.users.create(_user(email="other@example.com"))
    with pytest.raises(DuplicateKeyError) as by_email:
        repos.users.create(_user(username="bob", email="ALICE@example.com"))

    assert by_name.value.field == "username"
    assert by_email.value.field == "email"
    assert repos.users.count() == 1


def test_file_store_failed_save_keeps_memory_in_line_with_disk(
    tmp_path: Path, monkeypatch
) -> None:
    path = tmp_path / "users.json"
    repos = open_file_repositories(path)
    repos.users.create(_user())
    repos.refresh_tokens.create(_refresh("r1"))

    def failing_save(self, data) -> None:
        raise StorageError("save", "disk full")

    with monkeypatch.context() as patch:
        patch.setattr(JsonAuthDocument, "_save", failing_save)
        with pytest.raises(StorageError):
            repos.users.create(_user("zoe", "zoe@example.com"))
        with pytest.raises(StorageError):
            repos.refresh_tokens.revoke_if_usable("r1", utc_now())

    assert repos.users.find_by_username("zoe") is None
    assert repos.refresh_tokens.find_by_token("r1").revoked is False
    assert "zoe" not in path.read_text(encoding="utf-8")

    retried = repos.users.create(_user("zoe", "zoe@example.com"))

    assert retried.username == "zoe"
    assert open_file_repositories(path).users.find_by_username("zoe") is not None


def test_file_store_persists_camel_case_document_layout(tmp_path: Path) -> None:
    path = tmp_path / "store" / "users.json"
    repos = open_file_repositories(path)
    user = repos.users.create(_user())
    repos.refresh_tokens.create(_refresh("r1", user.id))
    repos.reset_tokens.create(
        PasswordResetToken(token="p1", user_id=user.id, expires=utc_now() + timedelta(minutes=5))
    )

    payload = json.loads(path.read_text(encoding="utf-8"))

    assert set(payload) == {"users", "refreshTokens", "passwordResetTokens"}
    assert payload["users"][0]["passwordHash"] == "hash"
    assert "createdAt" in payload["users"][0]
    assert payload["refreshTokens"][user.id][0]["token"] == "r1"
    assert payload["passwordResetTokens"][user.id][0]["used"] is False
    assert not (tmp_path / "store" / "users.json.tmp").exists()


def test_file_store_reloads_state_from_disk(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    first = open_file_repositories(path)
    user = first.users.create(_user())
    first.refresh_tokens.create(_refresh("r1", user.id))

    second = open_file_repositories(path)
    record = second.refresh_tokens.find_by_token("r1")

    assert second.users.find_by_username("alice") is not None
    assert record is not None
    assert record.user_id == user.id
    assert record.expires.tzinfo is not None


def test_file_store_handles_corrupted_file(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    path.write_text("{ invalid", encoding="utf-8")

    repos = open_file_repositories(path)

    assert repos.users.find_by_username("nobody") is None
    repos.users.create(_user())
    assert open_file_repositories(path).users.count() == 1


def test_file_store_update_user_validates_and_detects_conflicts(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    alice = repos.users.create(_user())
    repos.users.create(_user(username="bob", email="bob@example.com"))

    updated = repos.users.update(alice.id, {"role": "admin", "active": False})

    assert updated.role == "admin"
    assert updated.active is False
    assert updated.updated_at >= alice.updated_at
    with pytest.raises(DuplicateKeyError):
        repos.users.update(alice.id, {"email": "bob@example.com"})
    with pytest.raises(RecordNotFoundError):
        repos.users.update("missing", {"role": "admin"})


def test_file_store_lists_newest_first_with_filters(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    base = utc_now()
    for index, role in enumerate(["user", "admin", "user"]):
        repos.users.create(
            _user(
                username=f"user{index}",
                email=f"user{index}@example.com",
                role=role,
                created_at=base + timedelta(seconds=index),
            )
        )

    page = repos.users.list(skip=0, limit=2)
    users_only = repos.users.list(role="user")

    assert [user.username for user in page] == ["user2", "user1"]
    assert [user.username for user in users_only] == ["user2", "user0"]
    assert repos.users.count() == 3
    assert repos.users.count(role="admin") == 1
    assert repos.users.list(skip=3, limit=10) == []


def test_file_store_update_last_login_and_delete(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    user = repos.users.create(_user())

    repos.users.update_last_login(user.id)
    touched = repos.users.find_by_id(user.id)

    assert touched is not None and touched.last_login is not None
    assert repos.users.delete(user.id) is True
    assert repos.users.delete(user.id) is False


def test_file_store_revoke_if_usable_succeeds_once(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.refresh_tokens.create(_refresh("r1"))
    now = utc_now()

    first = repos.refresh_tokens.revoke_if_usable("r1", now)
    second = repos.refresh_tokens.revoke_if_usable("r1", now)

    assert first is not None and first.revoked is True
    assert second is None
    assert repos.refresh_tokens.revoke_if_usable("missing", now) is None


def test_file_store_revoke_if_usable_is_exclusive_across_threads(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.refresh_tokens.create(_refresh("r1"))
    results: list[RefreshToken | None] = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(repos.refresh_tokens.revoke_if_usable("r1", utc_now()))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for result in results if result is not None) == 1


def test_file_store_expired_token_is_not_revocable_conditionally(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.refresh_tokens.create(_refresh("old", ttl=-10))

    assert repos.refresh_tokens.revoke_if_usable("old", utc_now()) is None
    revoked = repos.refresh_tokens.revoke("old")
    assert revoked is not None and revoked.revoked is True


def test_file_store_mark_used_if_usable_succeeds_once(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.reset_tokens.create(
        PasswordResetToken(token="p1", user_id="u1", expires=utc_now() + timedelta(minutes=5))
    )

    assert repos.reset_tokens.mark_used_if_usable("p1", utc_now()) is not None
    assert repos.reset_tokens.mark_used_if_usable("p1", utc_now()) is None
    stored = repos.reset_tokens.find_by_token("p1")
    assert stored is not None and stored.used is True


def test_file_store_revoke_all_and_delete_all_for_user(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.refresh_tokens.create(_refresh("a", "u1"))
    repos.refresh_tokens.create(_refresh("b", "u1"))
    repos.refresh_tokens.create(_refresh("c", "u2"))

    assert repos.refresh_tokens.revoke_all_for_user("u1") == 2
    assert repos.refresh_tokens.revoke_all_for_user("u1") == 0
    other = repos.refresh_tokens.find_by_token("c")
    assert other is not None and other.revoked is False
    assert repos.refresh_tokens.delete_all_for_user("u1") == 2
    assert repos.refresh_tokens.find_by_token("a") is None


def test_file_store_find_latest_for_user(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    now = utc_now()
    for index, token in enumerate(["t0", "t1", "t2"]):
        record = _refresh(token)
        record.created_at = now + timedelta(seconds=index)
        repos.refresh_tokens.create(record)

    latest = repos.refresh_tokens.find_latest_for_user("u1")

    assert latest is not None and latest.token == "t2"
    assert repos.refresh_tokens.find_latest_for_user("nobody") is None


def test_file_store_delete_expired_is_idempotent(tmp_path: Path) -> None:
    repos = open_file_repositories(tmp_path / "users.json")
    repos.refresh_tokens.create(_refresh("live"))
    repos.refresh_tokens.create(_refresh("dead", ttl=-60))
    repos.reset_tokens.create(
        PasswordResetToken(token="p-dead", user_id="u1", expires=utc_now() - timedelta(minutes=1))
    )
    now = utc_now()

    assert repos.refresh_tokens.delete_expired(now) == 1
    assert repos.refresh_tokens.delete_expired(now) == 0
    assert repos.reset_tokens.delete_expired(now) == 1
    assert repos.refresh_tokens.find_by_token("live") is not None
    assert repos.refresh_tokens.find_by_token("dead") is None


def test_build_auth_repositories_resolves_relative_file_path(
    tmp_path: Path, monkeypatch
) -> None:
    monkeypatch.delenv("MONGODB_URI", raising=False)
    config = build_config(Path("data/users.json"))

    repos = build_auth_repositories(config.storage, app_root=tmp_path)
    repos.users.create(_user())

    assert repos.backend == "file"
    assert (tmp_path / "data" / "users.json").exists()
