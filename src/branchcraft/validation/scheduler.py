"""Debounced validation scheduling.

Editing produces bursts of changes (dragging a node, typing a title).
``DebouncedValidator`` coalesces a burst into one validation run: every
``notify()`` restarts the quiet-period timer, and only the last one in a
burst triggers the run. If the timer fires while a run is still in
flight, one follow-up run is queued instead of running concurrently.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from branchcraft.observability.logging import get_logger

log = get_logger(__name__)

DEFAULT_DELAY = 0.5


class DebouncedValidator:
    """Run a validation callback after a quiet period.

    Must be used from within a running event loop.

    Args:
        run: Zero-argument callable, sync or async. Exceptions it raises
            are logged and do not reach the event loop.
        delay: Quiet period in seconds.

    Attributes:
        runs: Number of completed runs (successful or failed).
    """

    def __init__(self, run: Callable[[], Awaitable[Any] | Any], delay: float = DEFAULT_DELAY) -> None:
        self._run = run
        self.delay = delay
        self.runs = 0
        self._timer: asyncio.Task[None] | None = None
        self._active: asyncio.Task[None] | None = None
        self._rerun = False

    @property
    def pending(self) -> bool:
        """True while a timer is waiting to fire."""
        return self._timer is not None and not self._timer.done()

    @property
    def running(self) -> bool:
        """True while a run is in flight."""
        return self._active is not None and not self._active.done()

    def notify(self) -> None:
        """Signal a change; (re)start the quiet-period timer."""
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire_after_delay())

    def cancel(self) -> None:
        """Drop the pending timer, if any. An in-flight run is not affected."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def flush(self) -> None:
        """Run now instead of waiting, and wait for the run to settle."""
        self.cancel()
        self._start()
        if self._active is not None:
            await self._active

    async def aclose(self) -> None:
        """Cancel the timer and wait for an in-flight run to finish."""
        timer = self._timer
        self.cancel()
        if timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        self._rerun = False
        if self._active is not None and not self._active.done():
            await self._active

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None
        self._start()

    def _start(self) -> None:
        if self.running:
            self._rerun = True
            log.debug("validation_rerun_queued")
            return
        self._active = asyncio.get_running_loop().create_task(self._execute())

    async def _execute(self) -> None:
        while True:
            self._rerun = False
            try:
                outcome = self._run()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                log.exception("scheduled_validation_failed")
            self.runs += 1
            if not self._rerun:
                break
