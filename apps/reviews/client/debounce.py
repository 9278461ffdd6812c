"""Keyed debouncing of async commits on the running event loop."""

import asyncio
import logging
from typing import Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD = 1.5


class Debouncer:
    """
    Run a callback once a key has been quiet for ``quiet_period`` seconds.

    Scheduling a key again before its timer fires replaces the pending
    callback, so only the last one of a burst runs. Once a timer has fired
    its callback is in flight and is no longer affected by ``cancel``.

    Example:
        >>> debouncer = Debouncer(quiet_period=1.5)
        >>> debouncer.schedule(song_id, lambda: commit(song_id, 'final text'))
    """

    def __init__(self, quiet_period: float = DEFAULT_QUIET_PERIOD):
        if quiet_period < 0:
            raise ValueError("quiet_period must not be negative")
        self.quiet_period = quiet_period
        self._timers: dict[Hashable, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        """(Re)start the timer for ``key``. Must be called from a running loop."""
        if self._closed:
            raise RuntimeError("Debouncer is closed")

        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.create_task(self._fire_later(key, callback))

    def pending(self, key: Hashable) -> bool:
        """Whether a timer for ``key`` is waiting to fire."""
        timer = self._timers.get(key)
        return timer is not None and not timer.done()

    def cancel(self, key: Hashable) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None or timer.done():
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for key in list(self._timers):
            if self.cancel(key):
                cancelled += 1
        return cancelled

    def close(self) -> None:
        """Discard every waiting timer; later schedules raise."""
        self._closed = True
        cancelled = self.cancel_all()
        if cancelled:
            logger.debug("Debouncer closed, %d pending callbacks discarded", cancelled)

    async def join(self) -> None:
        """Wait until no timer is waiting and no fired callback is running."""
        while True:
            tasks = [task for task in (*self._timers.values(), *self._inflight) if not task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _fire_later(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.quiet_period)

        current = asyncio.current_task()
        if self._closed or self._timers.get(key) is not current:
            return

        # From here on the callback is in flight, not a timer
        del self._timers[key]
        self._inflight.add(current)
        try:
            await callback()
        except Exception:
            # Nobody awaits a fired timer
            logger.exception("Debounced callback for %r failed", key)
        finally:
            self._inflight.discard(current)
