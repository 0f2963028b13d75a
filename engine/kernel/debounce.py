"""
Cancel-then-restart debounce timer on the running event loop.

Used by the render surface controller (re-render after source edits) and the
sync manager (buffer ⇄ file tree propagation). A new call always cancels the
pending one; timers never stack.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """Runs the most recently scheduled callback once the delay settles."""

    def __init__(self, delay_ms: int, name: str = "debounce"):
        self.delay = max(delay_ms, 0) / 1000
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._callback: Callable[[], Awaitable[Any] | Any] | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, callback: Callable[[], Awaitable[Any] | Any]) -> None:
        """Cancel any pending run and schedule callback after the delay."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._callback = callback
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._callback = None

    async def flush(self) -> None:
        """Run the pending callback now, if any, and wait for it."""
        if self._handle is None:
            if self._task is not None and not self._task.done():
                await self._task
            return
        self._handle.cancel()
        self._handle = None
        callback, self._callback = self._callback, None
        if callback is not None:
            await self._run(callback)

    async def wait(self) -> None:
        """Wait for the in-flight callback started by the timer, if any."""
        if self._task is not None and not self._task.done():
            await self._task

    def _fire(self) -> None:
        self._handle = None
        callback, self._callback = self._callback, None
        if callback is None:
            return
        self._task = asyncio.ensure_future(self._run(callback))

    async def _run(self, callback: Callable[[], Awaitable[Any] | Any]) -> None:
        try:
            result = callback()
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                await result
        except Exception:
            logger.warning("%s: debounced callback failed", self.name, exc_info=True)
