"""
Clocks and one-shot schedulers.

Everything in PartyCD runs on one logical thread: each event handler and
each timer callback runs to completion before the next starts.  Two
schedulers provide that model:

- :class:`AsyncioScheduler` wraps a running event loop (production).
- :class:`ManualScheduler` is a virtual clock advanced explicitly (tests and
  the ``partycd demo`` command).
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Tuple


class TimerHandle:
    """Handle returned by :meth:`ManualScheduler.call_later`."""

    __slots__ = ("when", "callback", "cancelled")

    def __init__(self, when: float, callback: Callable[[], Any]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock plus timer queue.

    Calling the instance returns the current virtual time, so it can be used
    both as the clock and as the scheduler of a component.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def __call__(self) -> float:
        return self._now

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def call_soon(self, callback: Callable[[], Any]) -> TimerHandle:
        return self.call_later(0.0, callback)

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every timer that falls due.

        Timers run in due-time order (FIFO for equal times), each with the
        clock set to its own due time.  Returns the number of callbacks run.
        """
        target = self._now + max(0.0, seconds)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if handle.cancelled:
                continue
            handle.callback()
            ran += 1
        self._now = target
        return ran

    def run_until_idle(self, limit: int = 10_000) -> int:
        """Run all queued callbacks (advancing time as needed)."""
        ran = 0
        while self._queue and ran < limit:
            when = self._queue[0][0]
            ran += self.advance(max(0.0, when - self._now))
        return ran


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop; the loop clock is monotonic."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_event_loop()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def __call__(self) -> float:
        return self._loop.time()

    def time(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay), callback)

    def call_soon(self, callback: Callable[[], Any]) -> asyncio.Handle:
        return self._loop.call_soon(callback)

    def call_soon_threadsafe(self, callback: Callable[[], Any]) -> asyncio.Handle:
        """Hand *callback* over from a foreign thread (e.g. a network loop)."""
        return self._loop.call_soon_threadsafe(callback)
