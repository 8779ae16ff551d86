"""Clock abstractions that drive every delayed and periodic simulator event.

The server runs on AsyncioClock, which delegates to the running event loop.
Tests use ManualClock and move time forward explicitly with ``advance()``,
so multi-second action delays and ticker intervals complete instantly and
deterministically.
"""

from __future__ import annotations

import abc
import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None: ...


class Clock(abc.ABC):
    """Base class for time sources."""

    @abc.abstractmethod
    def now(self) -> float:
        """Return the current time in seconds."""

    @abc.abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""

    @abc.abstractmethod
    async def sleep(self, delay: float) -> None:
        """Suspend the calling coroutine for ``delay`` seconds."""

    def every(self, interval: float, callback: Callable[[], None]) -> Ticker:
        """Run ``callback`` every ``interval`` seconds until the ticker is stopped."""
        ticker = Ticker(self, interval, callback)
        ticker.start()
        return ticker


class Ticker:
    """A periodic callback re-armed on its clock after each run."""

    def __init__(self, clock: Clock, interval: float, callback: Callable[[], None]) -> None:
        if interval <= 0:
            raise ValueError(f"Ticker interval must be positive, got {interval}")
        self._clock = clock
        self._interval = interval
        self._callback = callback
        self._handle: TimerHandle | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._arm()

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._handle = self._clock.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        if not self._running:
            return
        self._callback()
        if self._running:
            self._arm()


class AsyncioClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(max(delay, 0.0), callback)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(delay, 0.0))


class _ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock(Clock):
    """Virtual clock whose time only moves when ``advance()`` is called.

    Callbacks run synchronously inside ``advance()``, in deadline order, with
    ``now()`` set to each callback's deadline while it runs. Callbacks may
    schedule further callbacks; those run too if they fall due within the
    same advance.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, _ManualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle(self._now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    async def sleep(self, delay: float) -> None:
        if delay <= 0:
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not future.done():
                future.set_result(None)

        self.call_later(delay, _wake)
        await future

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not fired or been cancelled."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every callback that falls due.

        Args:
            seconds: How far to move the clock. Must not be negative.
        """
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self._now = when
            if not handle.cancelled:
                handle.callback()
        self._now = target
