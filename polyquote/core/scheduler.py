"""
PolyQuote — Schedulers
=======================
Cancellable delayed callbacks used to model network latency on the paper
venue.

  - LoopScheduler:   backed by asyncio loop.call_later (live / paper mode)
  - ManualScheduler: virtual clock advanced explicitly (replay, tests)

Both hand out TaskHandle objects. cancel() is idempotent and a cancelled
handle never fires. Callbacks run on the scheduler's own thread of control,
never concurrently with an EventBus dispatch.
"""

import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger("polyquote.scheduler")


class TaskHandle:
    """Handle to one scheduled callback."""

    def __init__(self, due_ms: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self._callback = callback
        self._cancelled = False
        self._fired = False
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        if self._fired:
            return
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()

    def _run(self) -> None:
        if not self.pending:
            return
        self._fired = True
        self._callback()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "fired" if self._fired else "pending"
        return f"<TaskHandle due={self.due_ms} {state}>"


class Scheduler:
    """Interface shared by both schedulers."""

    def time_ms(self) -> int:
        raise NotImplementedError

    def call_later(self, delay_secs: float, callback: Callable[[], None]) -> TaskHandle:
        raise NotImplementedError


class LoopScheduler(Scheduler):
    """Schedules on a running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time_ms(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_secs: float, callback: Callable[[], None]) -> TaskHandle:
        delay_secs = max(0.0, delay_secs)
        handle = TaskHandle(self.time_ms() + int(delay_secs * 1000), callback)
        handle._timer = self.loop.call_later(delay_secs, handle._run)
        return handle


class ManualScheduler(Scheduler):
    """
    Deterministic virtual-clock scheduler.

    Nothing fires until advance() or run_pending() is called, which matches
    the asynchronous semantics of a zero-delay loop callback. Callbacks due at
    the same instant fire in scheduling order.
    """

    def __init__(self, start_ms: int = 0):
        self._now_ms = start_ms
        self._heap: List[Tuple[int, int, TaskHandle]] = []
        self._seq = itertools.count()

    def time_ms(self) -> int:
        return self._now_ms

    def call_later(self, delay_secs: float, callback: Callable[[], None]) -> TaskHandle:
        due = self._now_ms + int(round(max(0.0, delay_secs) * 1000))
        handle = TaskHandle(due, callback)
        heapq.heappush(self._heap, (due, next(self._seq), handle))
        return handle

    def advance(self, secs: float) -> int:
        """Move the clock forward, firing everything that comes due. Returns fired count."""
        return self.advance_to(self._now_ms + int(round(secs * 1000)))

    def advance_to(self, target_ms: int) -> int:
        fired = 0
        while self._heap and self._heap[0][0] <= target_ms:
            due, _, handle = heapq.heappop(self._heap)
            if not handle.pending:
                continue
            self._now_ms = max(self._now_ms, due)
            try:
                handle._run()
            except Exception as e:
                logger.error(f"Scheduled callback failed: {e}", exc_info=True)
            fired += 1
        self._now_ms = max(self._now_ms, target_ms)
        return fired

    def run_pending(self) -> int:
        """Fire everything already due at the current instant."""
        return self.advance_to(self._now_ms)

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, h in self._heap if h.pending)
