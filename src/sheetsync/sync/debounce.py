"""Trailing-edge debouncer with an injectable scheduler.

``Debouncer.trigger()`` (re)arms a single timer; the wrapped callable runs
once, ``delay`` seconds after the *last* trigger of a burst.  Timers come
from a scheduler so tests can drive time by hand with ``VirtualScheduler``
instead of sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, fn)


class _VirtualTimer:
    def __init__(self, when: float, fn: Callable[[], None]) -> None:
        self.when = when
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Manually advanced clock for deterministic timer tests."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, _VirtualTimer]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, fn: Callable[[], None]) -> _VirtualTimer:
        timer = _VirtualTimer(self._now + delay, fn)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due timers in order.  Returns fired count."""
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = when
            timer.fn()
            fired += 1
        self._now = target
        return fired


class Debouncer:
    """Collapse bursts of ``trigger()`` calls into one call of *fn*."""

    def __init__(
        self,
        fn: Callable[[], None],
        delay: float,
        scheduler: Scheduler | None = None,
    ) -> None:
        if delay <= 0:
            raise ValueError("Debounce delay must be positive")
        self.fn = fn
        self.delay = delay
        self.scheduler = scheduler or LoopScheduler()
        self.last_trigger: float | None = None
        self.fire_count = 0
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.last_trigger = self.scheduler.now()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self.scheduler.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """Fire a pending call now.  Returns ``False`` if nothing was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True

    def _fire(self) -> None:
        self._handle = None
        self.fire_count += 1
        try:
            self.fn()
        except Exception:
            logger.exception("sheetsync: debounced callback failed")
