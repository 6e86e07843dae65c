from __future__ import annotations

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mukkaboot_auth.api.http_setup import (
    register_exception_handlers,
    register_http_middleware,
)
from mukkaboot_auth.api.runtime_routes import RuntimeRouteDeps, register_runtime_routes
from mukkaboot_auth.auth.middleware import create_auth_middleware
from mukkaboot_auth.auth.password_reset_router import create_password_reset_router
from mukkaboot_auth.auth.rate_limiter import LoginRateLimiter
from mukkaboot_auth.auth.repository import build_auth_repositories
from mukkaboot_auth.auth.router import create_auth_router
from mukkaboot_auth.auth.service import AuthService
from mukkaboot_auth.auth.sweeper import TokenSweeper
from mukkaboot_auth.auth.tokens import TokenIssuer
from mukkaboot_auth.auth.user_router import create_user_router
from mukkaboot_auth.auth.user_service import UserService
from mukkaboot_auth.core.config import AppConfig
from mukkaboot_auth.core.logging import setup_logging

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level, APP_CONFIG.logging.format)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def create_app(config: AppConfig = APP_CONFIG, *, app_root: Path = APP_ROOT) -> FastAPI:
    app = FastAPI(title="MukkabootAI Auth API", version="1.0.0")

    repos = build_auth_repositories(config.storage, app_root=app_root)
    auth_service = AuthService(repos, TokenIssuer(config.auth), config)
    user_service = UserService(repos, config)
    login_rate_limiter = (
        LoginRateLimiter(
            max_attempts=config.security.login_rate_limit_max_attempts,
            window_seconds=config.security.login_rate_limit_window_seconds,
        )
        if config.features.use_rate_limiting
        else None
    )
    auth_service.bootstrap_admin_user()

    def sweep() -> None:
        auth_service.sweep_expired_tokens()
        if login_rate_limiter is not None:
            login_rate_limiter.prune()

    def shutdown() -> None:
        if login_rate_limiter is not None:
            login_rate_limiter.close()
        repos.close()

    app.include_router(
        create_auth_router(auth_service, user_service, login_rate_limiter)
    )
    app.include_router(create_password_reset_router(auth_service))
    app.include_router(create_user_router(user_service))
    register_runtime_routes(
        app,
        deps=RuntimeRouteDeps(
            sweeper=TokenSweeper(sweep, config.token_sweep_interval_seconds),
            on_shutdown=shutdown,
        ),
    )

    # Last registered middleware runs first: CORS, then logging/size, then auth.
    app.middleware("http")(create_auth_middleware(auth_service))
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    LOGGER.info("auth_app_ready", extra={"operation": repos.backend})
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=APP_CONFIG.port, log_config=None)
