"""
Automatic number-calling timer.

While a game is RUNNING in automatic calling mode, the timer invokes its tick
callback once per call interval. The interval is measured from the end of the
previous tick, so a slow announcement delays the next call instead of
overlapping it.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


def _current_task() -> asyncio.Task[None] | None:
    try:
        return asyncio.current_task()  # type: ignore[return-value]
    except RuntimeError:
        return None


class CallTimer:
    """Interval loop driving automatic calls for one game."""

    def __init__(self, interval_seconds: float) -> None:
        self._interval_seconds = interval_seconds
        self._active_task: asyncio.Task[None] | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    def start(self, on_tick: Callable[[], Awaitable[None]]) -> None:
        """Start (or restart) the loop. The first tick fires after one interval."""
        self.cancel()
        self._active_task = asyncio.create_task(self._run_loop(on_tick))

    def cancel(self) -> None:
        """
        Stop the loop.

        When called from inside a tick the task is only detached, not
        cancelled, so the tick can finish its own broadcasts.
        """
        task = self._active_task
        self._active_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _run_loop(self, on_tick: Callable[[], Awaitable[None]]) -> None:
        me = _current_task()
        try:
            while self._active_task is me:
                await asyncio.sleep(self._interval_seconds)
                if self._active_task is not me:
                    break
                try:
                    await on_tick()
                except Exception:
                    # the failed tick is skipped; the next interval calls again
                    logger.exception("call timer tick failed")
        except asyncio.CancelledError:
            pass
