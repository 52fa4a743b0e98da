"""
Scheduling of trial suspension points.

The engine never sleeps or touches timers directly. It asks a scheduler for
three things: the current monotonic time, a delayed callback (ISI, no-go
inhibition window, feedback delay) and a callback on the next display frame
(stimulus onset). Production code uses :class:`AsyncioScheduler`; tests drive
:class:`VirtualScheduler`, whose clock only moves when told to.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import math
from typing import Any, Callable, Protocol

from config import DEFAULT_REFRESH_RATE_HZ

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Handle to a pending callback. ``cancel()`` is safe to call repeatedly."""

    def __init__(self, on_cancel: Callable[[], Any] | None = None):
        self._on_cancel = on_cancel
        self._cancelled = False
        self._done = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._done)

    def cancel(self) -> None:
        if not self.active:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    def _mark_done(self) -> None:
        self._done = True


class Scheduler(Protocol):
    def now(self) -> float:
        ...

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> ScheduledCall:
        ...

    def call_at_next_frame(self, callback: Callable[[float], Any]) -> ScheduledCall:
        ...


def next_frame_boundary(now_ms: float, frame_rate_hz: float) -> float:
    """First display-period boundary strictly after ``now_ms``."""
    period = 1000.0 / frame_rate_hz
    boundary = (math.floor(now_ms / period) + 1) * period
    if boundary <= now_ms:
        boundary += period
    return boundary


class VirtualScheduler:
    """Deterministic scheduler on a virtual millisecond clock.

    Callbacks fire in due-time order (FIFO among equal times) only while
    :meth:`advance` or :meth:`run_until_idle` is running. Exceptions raised by
    callbacks propagate to the caller of those methods.
    """

    def __init__(self, frame_rate_hz: float = DEFAULT_REFRESH_RATE_HZ, start_ms: float = 0.0):
        if frame_rate_hz <= 0:
            raise ValueError("frame_rate_hz must be positive")
        self.frame_rate_hz = float(frame_rate_hz)
        self._now = float(start_ms)
        self._queue: list[tuple[float, int, ScheduledCall, Callable[..., Any], tuple[Any, ...]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for _, _, call, _, _ in self._queue if call.active)

    def next_due(self) -> float | None:
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> ScheduledCall:
        return self._push(self._now + max(0.0, float(delay_ms)), callback, ())

    def call_at_next_frame(self, callback: Callable[[float], Any]) -> ScheduledCall:
        boundary = next_frame_boundary(self._now, self.frame_rate_hz)
        return self._push(boundary, callback, (boundary,))

    def advance(self, ms: float) -> int:
        """Move the clock forward by ``ms``, firing everything that falls due."""
        if ms < 0:
            raise ValueError("cannot move a monotonic clock backwards")
        target = self._now + ms
        fired = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > target:
                break
            fired += self._fire_next()
        self._now = target
        return fired

    def run_until_idle(self, max_callbacks: int = 1_000_000) -> int:
        """Fire callbacks until the queue is empty."""
        fired = 0
        while True:
            self._drop_cancelled()
            if not self._queue:
                return fired
            if fired >= max_callbacks:
                raise RuntimeError(f"scheduler still busy after {max_callbacks} callbacks")
            fired += self._fire_next()

    def _push(self, due: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> ScheduledCall:
        call = ScheduledCall()
        heapq.heappush(self._queue, (due, next(self._seq), call, callback, args))
        return call

    def _drop_cancelled(self) -> None:
        while self._queue and not self._queue[0][2].active:
            heapq.heappop(self._queue)

    def _fire_next(self) -> int:
        due, _, call, callback, args = heapq.heappop(self._queue)
        self._now = max(self._now, due)
        call._mark_done()
        callback(*args)
        return 1


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop and its clock (``loop.time()``).

    Frame callbacks are aligned to the next refresh-period boundary of the
    loop clock; a renderer with a real vsync callback should provide its
    own ``call_at_next_frame``.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        frame_rate_hz: float = DEFAULT_REFRESH_RATE_HZ,
    ):
        if frame_rate_hz <= 0:
            raise ValueError("frame_rate_hz must be positive")
        self._loop = loop
        self.frame_rate_hz = float(frame_rate_hz)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop if self._loop is not None else asyncio.get_running_loop()

    def now(self) -> float:
        # same clock the loop uses for call_later deadlines
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> ScheduledCall:
        call = ScheduledCall()
        handle = self.loop.call_later(max(0.0, delay_ms) / 1000.0, self._fire, call, callback, ())
        call._on_cancel = handle.cancel
        return call

    def call_at_next_frame(self, callback: Callable[[float], Any]) -> ScheduledCall:
        now = self.now()
        boundary = next_frame_boundary(now, self.frame_rate_hz)
        call = ScheduledCall()
        handle = self.loop.call_later((boundary - now) / 1000.0, self._fire_frame, call, callback)
        call._on_cancel = handle.cancel
        return call

    @staticmethod
    def _fire(call: ScheduledCall, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        if not call.active:
            return
        call._mark_done()
        callback(*args)

    def _fire_frame(self, call: ScheduledCall, callback: Callable[[float], Any]) -> None:
        # onset timestamp is taken when the frame callback actually runs
        self._fire(call, callback, (self.now(),))
