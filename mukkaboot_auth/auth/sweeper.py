"""Periodic background sweep of expired refresh and reset tokens."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

LOGGER = logging.getLogger(__name__)


class TokenSweeper:
    """Run ``sweep`` every ``interval_seconds`` independently of request traffic."""

    def __init__(self, sweep: Callable[[], object], interval_seconds: float) -> None:
        self._sweep = sweep
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start background loop if enabled and not already running."""
        if self._interval_seconds <= 0 or self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop background loop and wait for an in-flight sweep."""
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None

    async def run_once(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._sweep)
        except Exception:
            LOGGER.exception("token_sweep_failed", extra={"operation": "sweep"})

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._interval_seconds
                )
            except asyncio.TimeoutError:
                await self.run_once()
