"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from mukkaboot_auth.api.contracts import ApiErrorResponse
from mukkaboot_auth.api.errors import ApiErrorCode, to_error_payload
from mukkaboot_auth.auth.repository import StorageError
from mukkaboot_auth.core.config import AppConfig
from mukkaboot_auth.core.logging import set_correlation_id


def _error_response(status_code: int, error_code: ApiErrorCode, message: str) -> JSONResponse:
    payload = to_error_payload(
        {"error_code": error_code, "message": message}, status_code
    )
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(**payload).model_dump(),
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg") or "Invalid value")
    return f"{location}: {message}" if location else message


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach common security and observability middleware to an app."""

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                parsed_length = int(content_length)
            except ValueError:
                parsed_length = 0
            if parsed_length > config.security.request_max_bytes:
                return _error_response(
                    413,
                    ApiErrorCode.REQUEST_TOO_LARGE,
                    "Request size exceeds configured limit "
                    f"({config.security.request_max_bytes} bytes).",
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        logger.info(
            "request_completed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            },
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Attach API exception handlers that return stable error contracts."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning(
            "http_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": exc.status_code,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiErrorResponse(**payload).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(
            "validation_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 400,
            },
        )
        return _error_response(
            400, ApiErrorCode.VALIDATION_ERROR, _validation_message(exc)
        )

    @app.exception_handler(StorageError)
    async def handle_storage_exception(
        request: Request,
        exc: StorageError,
    ) -> JSONResponse:
        logger.error(
            "storage_error",
            extra={
                "path": request.url.path,
                "method": request.method,
                "operation": exc.operation,
                "status_code": 500,
            },
        )
        return _error_response(
            500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error"
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "unexpected_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 500,
            },
        )
        return _error_response(
            500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error"
        )
