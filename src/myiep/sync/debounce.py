"""
Debounced Trigger

Collapses a burst of calls into one run of an async callback, fired once the
burst has been quiet for `delay` seconds. Every trigger cancels the pending
timer and schedules a new one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Trailing-edge debounce on the running event loop."""

    def __init__(self, delay: float, callback: Callable[[], Awaitable[object]]):
        """Initialize debouncer.

        Args:
            delay: Quiet period in seconds before the callback fires
            callback: Coroutine function to run
        """
        self.delay = delay
        self.callback = callback
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """Whether a timer is armed and has not fired yet."""
        return self._timer is not None

    def trigger(self) -> None:
        """(Re)arm the timer. Must be called from the event loop thread."""
        if self._timer is not None:
            self._timer.cancel()

        self._timer = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self) -> None:
        """Run a pending callback now and wait for in-flight runs."""
        if self._timer is not None:
            self.cancel()
            self._fire()
        await self.wait()

    async def wait(self) -> None:
        """Wait for callback runs that already started."""
        while running := [t for t in self._tasks if not t.done()]:
            await asyncio.gather(*running, return_exceptions=True)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        try:
            await self.callback()
        except Exception:
            logger.exception("Debounced callback failed")
