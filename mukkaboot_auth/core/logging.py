"""Auth service logging: JSON lines for deployments, plain text for local runs.

Every record is stamped with the service name and the request correlation id
by ``AuthContextFilter`` so both formatters (and uvicorn's own loggers, which
are routed through the root handler) carry the same context.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

SERVICE_NAME = "auth"

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

EXTRA_LOG_FIELDS = (
    "user_id",
    "operation",
    "client_ip",
    "count",
    "detail",
    "path",
    "method",
    "status_code",
)

# uvicorn installs its own handlers; request lines come from request_completed.
UVICORN_LOGGERS = {
    "uvicorn": None,
    "uvicorn.error": None,
    "uvicorn.access": logging.WARNING,
}


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key in EXTRA_LOG_FIELDS:
        value = getattr(record, key, None)
        if value not in (None, ""):
            extras[key] = value
    return extras


class AuthContextFilter(logging.Filter):
    """Attach service name and correlation id to each record."""

    def __init__(self, service: str = SERVICE_NAME) -> None:
        super().__init__()
        self._service = service

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self._service
        record.correlation_id = CORRELATION_ID_CTX.get()
        return True


class JsonLogFormatter(logging.Formatter):
    """Serialize log records into compact JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", SERVICE_NAME),
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None)
            or CORRELATION_ID_CTX.get(),
        }
        payload.update(_record_extras(record))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class TextLogFormatter(logging.Formatter):
    """Human-readable single line with ``key=value`` extras appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _record_extras(record)
        correlation_id = getattr(record, "correlation_id", "")
        if correlation_id:
            fields = {"correlation_id": correlation_id, **fields}
        if not fields:
            return line
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {rendered}{sep}{tail}"


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure root logger; ``fmt`` is ``json`` or ``text``."""
    normalized_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(AuthContextFilter())
    handler.setFormatter(
        TextLogFormatter() if fmt.strip().lower() == "text" else JsonLogFormatter()
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(normalized_level)
    root_logger.addHandler(handler)

    for name, override in UVICORN_LOGGERS.items():
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True
        uvicorn_logger.setLevel(override or normalized_level)


def set_correlation_id(correlation_id: str) -> None:
    """Store correlation id in request-local context."""
    CORRELATION_ID_CTX.set(correlation_id)
