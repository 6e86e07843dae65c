"""Health endpoint and process lifecycle hooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import FastAPI

from mukkaboot_auth.api.contracts import HealthResponse
from mukkaboot_auth.auth.sweeper import TokenSweeper


@dataclass(frozen=True)
class RuntimeRouteDeps:
    """Dependencies required by runtime endpoints and hooks."""

    sweeper: TokenSweeper
    on_shutdown: Callable[[], None]


def register_runtime_routes(app: FastAPI, *, deps: RuntimeRouteDeps) -> None:
    """Register health endpoint and token sweeper lifecycle hooks."""

    @app.on_event("startup")
    async def startup_token_sweeper() -> None:
        await deps.sweeper.start()

    @app.on_event("shutdown")
    async def shutdown_token_sweeper() -> None:
        await deps.sweeper.stop()
        deps.on_shutdown()

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")
