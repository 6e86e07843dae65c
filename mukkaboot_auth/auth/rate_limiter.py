"""Login brute-force protection with in-process fixed windows per client IP."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from mukkaboot_auth.api.errors import ApiError, ApiErrorCode


@dataclass
class _Window:
    started_at: float
    attempts: int


class LoginRateLimiter:
    """Count login attempts per client IP; state resets on process restart."""

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize limiter state and policy parameters."""
        self._lock = Lock()
        self._windows: dict[str, _Window] = {}
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1, int(window_seconds))
        self._clock = clock

    def hit(self, client_ip: str) -> None:
        """Record one login attempt and raise 429 once the window cap is exceeded."""
        key = client_ip.strip() or "unknown"
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self._window_seconds:
                window = _Window(started_at=now, attempts=0)
                self._windows[key] = window
            window.attempts += 1
            if window.attempts <= self._max_attempts:
                return
            retry_after = int(window.started_at + self._window_seconds - now) + 1

        raise ApiError(
            status_code=429,
            error_code=ApiErrorCode.AUTH_RATE_LIMITED,
            message=(
                "Too many login attempts, please try again later. "
                f"Retry after {retry_after} seconds."
            ),
        )

    def prune(self) -> int:
        """Drop windows that have already elapsed."""
        now = self._clock()
        with self._lock:
            stale = [
                key
                for key, window in self._windows.items()
                if now - window.started_at >= self._window_seconds
            ]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def close(self) -> None:
        """Forget all tracked windows."""
        with self._lock:
            self._windows.clear()
