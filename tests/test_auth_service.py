from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import pytest

from mukkaboot_auth.api.errors import ApiError
from mukkaboot_auth.auth.file_store import open_file_repositories
from mukkaboot_auth.auth.models import PasswordResetToken, RefreshToken, utc_now
from mukkaboot_auth.auth.service import PASSWORD_RESET_MESSAGE, AuthService
from mukkaboot_auth.auth.tokens import TokenIssuer
from tests.auth_helpers import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    build_config,
    build_services,
)


def test_bootstrap_admin_user_is_idempotent(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)

    service.bootstrap_admin_user()

    admin = repos.users.find_by_username(ADMIN_USERNAME)
    assert admin is not None
    assert admin.role == "admin"
    assert admin.verified is True
    assert repos.users.count() == 1


def test_bootstrap_admin_user_reports_invalid_configured_email(
    tmp_path: Path, caplog
) -> None:
    config = build_config(tmp_path / "users.json")
    config = replace(config, auth=replace(config.auth, admin_email="admin@local"))
    repos = open_file_repositories(tmp_path / "users.json")
    service = AuthService(repos, TokenIssuer(config.auth), config)

    with caplog.at_level(logging.ERROR), pytest.raises(ValueError, match="AUTH_ADMIN_EMAIL"):
        service.bootstrap_admin_user()

    assert repos.users.count() == 0
    assert any(record.getMessage() == "bootstrap_admin_invalid" for record in caplog.records)


def test_login_returns_token_pair_and_records_session(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)

    session = service.login(ADMIN_USERNAME, ADMIN_PASSWORD, "10.0.0.1")
    claims = service.verify_access_token(session.access_token)
    record = repos.refresh_tokens.find_by_token(session.refresh_token)
    admin = repos.users.find_by_username(ADMIN_USERNAME)

    assert session.user.username == ADMIN_USERNAME
    assert session.user.role == "admin"
    assert claims == {"id": session.user.id, "username": ADMIN_USERNAME, "role": "admin"}
    assert record is not None and record.created_by_ip == "10.0.0.1"
    assert admin is not None and admin.last_login is not None


def test_login_failures_share_one_error(tmp_path: Path) -> None:
    service, users, _ = build_services(tmp_path)
    users.register("bob", "bob@example.com", "pw")
    bob = users.list_users(role="user")[0][0]
    users.update_user(bob.id, active=False)

    errors = []
    for username, password in [
        (ADMIN_USERNAME, "wrong"),
        ("ghost", "whatever"),
        ("bob", "pw"),
    ]:
        with pytest.raises(ApiError) as exc:
            service.login(username, password)
        errors.append((exc.value.status_code, exc.value.detail))

    assert errors[0] == errors[1] == errors[2]
    assert errors[0][0] == 401
    assert errors[0][1]["message"] == "Invalid username or password"


def test_refresh_rotates_and_revokes_presented_token(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    session = service.login(ADMIN_USERNAME, ADMIN_PASSWORD)

    rotated = service.refresh(session.refresh_token)

    old = repos.refresh_tokens.find_by_token(session.refresh_token)
    new = repos.refresh_tokens.find_by_token(rotated.refresh_token)
    assert rotated.refresh_token != session.refresh_token
    assert old is not None and old.revoked is True
    assert new is not None and new.revoked is False
    assert service.verify_access_token(rotated.access_token)["username"] == ADMIN_USERNAME


def test_refresh_token_cannot_be_replayed(tmp_path: Path) -> None:
    service, _, _ = build_services(tmp_path)
    session = service.login(ADMIN_USERNAME, ADMIN_PASSWORD)
    service.refresh(session.refresh_token)

    with pytest.raises(ApiError) as exc:
        service.refresh(session.refresh_token)

    assert exc.value.status_code == 401
    assert exc.value.detail["message"] == "Invalid or expired token"


def test_concurrent_refresh_with_same_token_has_single_winner(tmp_path: Path) -> None:
    service, _, _ = build_services(tmp_path)
    token = service.login(ADMIN_USERNAME, ADMIN_PASSWORD).refresh_token
    outcomes: list[str] = []
    barrier = threading.Barrier(6)

    def worker() -> None:
        barrier.wait()
        try:
            service.refresh(token)
            outcomes.append("ok")
        except ApiError as exc:
            outcomes.append(str(exc.status_code))

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("401") == 5


def test_refresh_rejects_unknown_and_expired_tokens(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    admin = repos.users.find_by_username(ADMIN_USERNAME)
    assert admin is not None
    repos.refresh_tokens.create(
        RefreshToken(token="stale", user_id=admin.id, expires=utc_now() - timedelta(seconds=1))
    )

    for token in ("does-not-exist", "stale"):
        with pytest.raises(ApiError) as exc:
            service.refresh(token)
        assert exc.value.status_code == 401


def test_refresh_for_deleted_user_is_rejected(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    repos.refresh_tokens.create(
        RefreshToken(token="orphan", user_id="gone", expires=utc_now() + timedelta(minutes=5))
    )

    with pytest.raises(ApiError) as exc:
        service.refresh("orphan")

    assert exc.value.status_code == 401
    assert exc.value.error_code == "USER_NOT_FOUND"


def test_logout_revokes_token_and_ignores_unknown(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    session = service.login(ADMIN_USERNAME, ADMIN_PASSWORD)

    service.logout(session.refresh_token)
    service.logout(session.refresh_token)
    service.logout("bad-token")

    record = repos.refresh_tokens.find_by_token(session.refresh_token)
    assert record is not None and record.revoked is True
    with pytest.raises(ApiError):
        service.refresh(session.refresh_token)


def test_access_token_survives_logout_until_expiry(tmp_path: Path) -> None:
    service, _, _ = build_services(tmp_path)
    session = service.login(ADMIN_USERNAME, ADMIN_PASSWORD)

    service.logout(session.refresh_token)

    assert service.verify_access_token(session.access_token)["role"] == "admin"


def test_verify_access_token_distinguishes_expired_from_invalid(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    admin = repos.users.find_by_username(ADMIN_USERNAME)
    assert admin is not None
    short_lived = replace(build_config().auth, access_token_ttl_seconds=-1)
    expired = TokenIssuer(short_lived).issue_access_token(admin)

    with pytest.raises(ApiError) as invalid_exc:
        service.verify_access_token("garbage")
    with pytest.raises(ApiError) as expired_exc:
        service.verify_access_token(expired)

    assert invalid_exc.value.detail["message"] == "Invalid token"
    assert expired_exc.value.detail["message"] == "Token expired"
    assert expired_exc.value.status_code == 401


def test_password_reset_flow_changes_password_and_burns_token(tmp_path: Path) -> None:
    service, users, repos = build_services(tmp_path)
    users.register("carol", "carol@example.com", "old-pw")
    session = service.login("carol", "old-pw")

    reply = service.request_password_reset("CAROL@example.com")
    assert reply.message == PASSWORD_RESET_MESSAGE
    assert reply.token is not None
    assert service.validate_reset_token(reply.token) is True

    service.perform_password_reset(reply.token, "new-pw")

    assert service.validate_reset_token(reply.token) is False
    with pytest.raises(ApiError) as reuse:
        service.perform_password_reset(reply.token, "other")
    assert reuse.value.status_code == 400
    with pytest.raises(ApiError):
        service.login("carol", "old-pw")
    assert service.login("carol", "new-pw").user.username == "carol"
    old_session = repos.refresh_tokens.find_by_token(session.refresh_token)
    assert old_session is not None and old_session.revoked is True


def test_password_reset_request_does_not_reveal_registration(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path, environment="production")

    known = service.request_password_reset(ADMIN_EMAIL)
    unknown = service.request_password_reset("nobody@example.com")

    assert known.model_dump(exclude_none=True) == unknown.model_dump(exclude_none=True)
    assert known.token is None
    admin = repos.users.find_by_username(ADMIN_USERNAME)
    assert admin is not None
    assert repos.reset_tokens.find_latest_for_user(admin.id) is not None


def test_password_reset_rejects_expired_and_unknown_tokens(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    admin = repos.users.find_by_username(ADMIN_USERNAME)
    assert admin is not None
    repos.reset_tokens.create(
        PasswordResetToken(
            token="expired-reset",
            user_id=admin.id,
            expires=utc_now() - timedelta(seconds=1),
        )
    )

    assert service.validate_reset_token("expired-reset") is False
    for token in ("expired-reset", "unknown-token"):
        with pytest.raises(ApiError) as exc:
            service.perform_password_reset(token, "pw")
        assert exc.value.status_code == 400
    assert service.login(ADMIN_USERNAME, ADMIN_PASSWORD).user.role == "admin"


def test_password_reset_disabled_by_feature_flag(tmp_path: Path) -> None:
    features = replace(build_config().features, allow_password_reset=False)
    service, _, _ = build_services(tmp_path, features=features)

    with pytest.raises(ApiError) as exc:
        service.request_password_reset(ADMIN_EMAIL)

    assert exc.value.status_code == 403


def test_sweep_expired_tokens_is_idempotent(tmp_path: Path) -> None:
    service, _, repos = build_services(tmp_path)
    live = service.login(ADMIN_USERNAME, ADMIN_PASSWORD).refresh_token
    repos.refresh_tokens.create(
        RefreshToken(token="dead", user_id="u", expires=utc_now() - timedelta(hours=1))
    )

    first = service.sweep_expired_tokens()
    second = service.sweep_expired_tokens()

    assert first == {"refresh_tokens": 1, "reset_tokens": 0}
    assert second == {"refresh_tokens": 0, "reset_tokens": 0}
    assert repos.refresh_tokens.find_by_token(live) is not None
