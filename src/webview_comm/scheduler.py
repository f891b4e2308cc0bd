"""Timer scheduling with a single monotonic clock and cancellable handles.

All retry, timeout, heartbeat and resync timers go through a Scheduler, so the
same code runs against the asyncio event loop in production and against a
virtual clock (ManualScheduler) in tests.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Any, Protocol

__all__ = [
    "LoopScheduler",
    "ManualScheduler",
    "ManualTimerHandle",
    "Scheduler",
    "TimerHandle",
]


class TimerHandle(Protocol):
    """Handle returned by Scheduler.call_later()."""

    def cancel(self) -> None:
        """Cancel the timer; a no-op if it already fired or was cancelled."""
        ...

    def cancelled(self) -> bool:
        """Return True if the timer was cancelled."""
        ...


class Scheduler(Protocol):
    """Monotonic clock plus one-shot timers."""

    def time(self) -> float:
        """Current monotonic time in seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` after ``delay`` seconds."""
        ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop (loop.time / loop.call_later)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop: asyncio.AbstractEventLoop = loop or asyncio.get_running_loop()

    def time(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return self._loop.call_later(delay, callback, *args)

    def __repr__(self) -> str:
        return f"LoopScheduler(time={self.time():.3f})"


class ManualTimerHandle:
    """Timer handle owned by a ManualScheduler."""

    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when: float = when
        self._callback: Callable[..., Any] = callback
        self._args: tuple[Any, ...] = args
        self._cancelled: bool = False
        self._fired: bool = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    def _run(self) -> None:
        self._fired = True
        self._callback(*self._args)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "fired" if self._fired else "pending"
        return f"ManualTimerHandle(when={self.when:.3f}, {state})"


class ManualScheduler:
    """Virtual-clock scheduler: time only moves when advance() is called.

    Timers fire in (deadline, scheduling order) order. Callbacks run
    synchronously inside advance() and see time() equal to their deadline,
    and timers they schedule within the advanced window also fire.

    Usage:
        >>> sched = ManualScheduler()
        >>> fired = []
        >>> _ = sched.call_later(2.0, fired.append, "ack-timeout")
        >>> sched.advance(1.5)
        >>> fired
        []
        >>> sched.advance(0.5)
        >>> fired
        ['ack-timeout']

    """

    def __init__(self, start: float = 0.0) -> None:
        self._now: float = start
        self._counter = itertools.count()
        self._queue: list[tuple[float, int, ManualTimerHandle]] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimerHandle:
        handle = ManualTimerHandle(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due."""
        if seconds < 0:
            msg = "Cannot move a monotonic clock backwards"
            raise ValueError(msg)
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self._now = when
            handle._run()  # noqa: SLF001
        self._now = target

    def pending(self) -> int:
        """Number of timers that are neither cancelled nor fired."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled())

    def __repr__(self) -> str:
        return f"ManualScheduler(time={self._now:.3f}, pending={self.pending()})"
