"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    secret_key: str
    issuer: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    reset_token_ttl_seconds: int
    password_hash_rounds: int
    admin_username: str
    admin_email: str
    admin_password: str


@dataclass(frozen=True)
class StorageConfig:
    """User/token storage backend selection."""

    use_mongodb: bool
    users_file_path: str
    mongodb_uri: str
    mongodb_db: str


@dataclass(frozen=True)
class FeatureConfig:
    """Feature flags of the auth service."""

    allow_user_registration: bool
    allow_password_reset: bool
    use_email_verification: bool
    use_rate_limiting: bool


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str
    format: str = "json"


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    storage: StorageConfig
    features: FeatureConfig
    logging: LoggingConfig
    security: SecurityConfig
    environment: str = "development"
    token_sweep_interval_seconds: int = 3600
    port: int = 3013

    @property
    def production(self) -> bool:
        """Return whether the service runs in production mode."""
        return self.environment == "production"

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        secret_key = (
            os.getenv("AUTH_SECRET_KEY", "").strip() or "dev-insecure-secret-change-me"
        )
        issuer = os.getenv("AUTH_ISSUER", "mukkaboot-auth").strip() or "mukkaboot-auth"
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "3600"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        reset_ttl = int(os.getenv("AUTH_RESET_TOKEN_TTL_SECONDS", "3600"))
        hash_rounds = int(os.getenv("AUTH_PASSWORD_HASH_ROUNDS", "120000"))
        admin_username = os.getenv("AUTH_ADMIN_USERNAME", "admin").strip() or "admin"
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", "admin@example.com").strip().lower()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "password").strip()

        users_file_path = (
            os.getenv("AUTH_USERS_FILE_PATH", "runtime/auth_store/users.json").strip()
            or "runtime/auth_store/users.json"
        )
        mongodb_uri = os.getenv("MONGODB_URI", "").strip()
        mongodb_db = os.getenv("MONGODB_DB", "mukkaboot").strip() or "mukkaboot"

        environment = (
            os.getenv("APP_ENV", "development").strip().lower() or "development"
        )
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        log_format = os.getenv("LOG_FORMAT", "json").strip().lower() or "json"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3002,http://127.0.0.1:3002",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))
        login_rate_limit_max_attempts = int(
            os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "10")
        )
        login_rate_limit_window_seconds = int(
            os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "900")
        )
        sweep_interval = int(os.getenv("TOKEN_SWEEP_INTERVAL_SECONDS", "3600"))
        port = int(os.getenv("PORT", "3013"))

        return AppConfig(
            auth=AuthConfig(
                secret_key=secret_key,
                issuer=issuer,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                reset_token_ttl_seconds=reset_ttl,
                password_hash_rounds=hash_rounds,
                admin_username=admin_username,
                admin_email=admin_email,
                admin_password=admin_password,
            ),
            storage=StorageConfig(
                use_mongodb=_env_flag("AUTH_USE_MONGODB", "0"),
                users_file_path=users_file_path,
                mongodb_uri=mongodb_uri,
                mongodb_db=mongodb_db,
            ),
            features=FeatureConfig(
                allow_user_registration=_env_flag("ALLOW_USER_REGISTRATION", "1"),
                allow_password_reset=_env_flag("ALLOW_PASSWORD_RESET", "1"),
                use_email_verification=_env_flag("USE_EMAIL_VERIFICATION", "0"),
                use_rate_limiting=_env_flag("USE_RATE_LIMITING", "1"),
            ),
            logging=LoggingConfig(level=log_level, format=log_format),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                login_rate_limit_max_attempts=login_rate_limit_max_attempts,
                login_rate_limit_window_seconds=login_rate_limit_window_seconds,
            ),
            environment=environment,
            token_sweep_interval_seconds=sweep_interval,
            port=port,
        )
