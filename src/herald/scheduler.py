"""Repeating timers on the running asyncio event loop."""

import asyncio
import logging
from typing import Callable, Iterable, Optional

logger = logging.getLogger(__name__)


class ScheduleHandle:
    """Token for one repeating timer.  Cancelling it more than once is fine."""

    def __init__(self, interval: float, callback: Callable[[], object]):
        self.interval = interval
        self.callback = callback
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def attach(self, timer: asyncio.TimerHandle) -> None:
        """Track the pending timer so cancel() can stop it."""
        self._timer = timer


class AsyncioScheduler:
    """Runs callbacks at a fixed interval via ``loop.call_later``.

    The next tick is armed before the callback runs, so a slow callback
    does not delay later ticks and missed ticks are never replayed.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule_repeating(self, delay: float, interval: float,
                           callback: Callable[[], object]) -> ScheduleHandle:
        """Call *callback* after *delay* seconds, then every *interval* seconds."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        handle = ScheduleHandle(interval, callback)
        self._arm(handle, delay)
        return handle

    def cancel_all(self, handles: Iterable[ScheduleHandle]) -> None:
        for handle in handles:
            handle.cancel()

    def _arm(self, handle: ScheduleHandle, delay: float) -> None:
        handle.attach(self._get_loop().call_later(delay, self._fire, handle))

    def _fire(self, handle: ScheduleHandle) -> None:
        if handle.cancelled:
            return
        self._arm(handle, handle.interval)
        try:
            handle.callback()
        except Exception:
            logger.exception("Scheduled callback raised")
