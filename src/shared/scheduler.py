"""Scheduler — a single timeline of delayed and periodic callbacks.

All background work (metric checks, escalation steps, cleanup, pattern
detection) is a task in one heap ordered by due time.  The heap is
advanced by a driver:

  live     — ``start()`` spawns a thread that calls ``run_pending()``
             every *poll_interval* seconds against the wall clock
  virtual  — ``advance(seconds)`` walks a :class:`ManualClock` forward,
             stopping at each due task so periodic work runs at the
             right virtual instants (tests, replay)

A failing callback is logged and never stops the timeline.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from src.shared.clock import Clock, ManualClock

log = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledTask:
    due: float
    seq: int
    callback: Callable[..., Any] = field(compare=False)
    args: tuple[Any, ...] = field(default=(), compare=False)
    interval: float | None = field(default=None, compare=False)
    name: str = field(default="", compare=False)
    key: str | None = field(default=None, compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    """Heap-based task queue bound to a clock."""

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self._heap: list[ScheduledTask] = []
        self._seq = itertools.count()
        self._lock = threading.RLock()
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def call_later(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        name: str = "",
        key: str | None = None,
    ) -> ScheduledTask:
        task = ScheduledTask(
            due=self.clock.now() + max(0.0, delay),
            seq=next(self._seq),
            callback=callback,
            args=args,
            name=name or getattr(callback, "__name__", "task"),
            key=key,
        )
        with self._lock:
            heapq.heappush(self._heap, task)
        return task

    def call_every(
        self,
        interval: float,
        callback: Callable[..., Any],
        *,
        name: str = "",
    ) -> ScheduledTask:
        if interval <= 0:
            raise ValueError("interval must be positive")
        task = ScheduledTask(
            due=self.clock.now() + interval,
            seq=next(self._seq),
            callback=callback,
            interval=interval,
            name=name or getattr(callback, "__name__", "periodic"),
        )
        with self._lock:
            heapq.heappush(self._heap, task)
        return task

    def cancel_all(self) -> int:
        """Cancel every pending task; returns how many were pending."""
        with self._lock:
            n = sum(1 for t in self._heap if not t.cancelled)
            for t in self._heap:
                t.cancel()
            self._heap.clear()
        if n:
            log.info("Scheduler cancelled %d pending tasks", n)
        return n

    def pending(self, key: str | None = None) -> list[ScheduledTask]:
        with self._lock:
            tasks = [t for t in self._heap if not t.cancelled]
        if key is not None:
            tasks = [t for t in tasks if t.key == key]
        return sorted(tasks)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _pop_due(self, now: float) -> ScheduledTask | None:
        with self._lock:
            while self._heap and self._heap[0].cancelled:
                heapq.heappop(self._heap)
            if self._heap and self._heap[0].due <= now:
                return heapq.heappop(self._heap)
        return None

    def _run(self, task: ScheduledTask) -> None:
        try:
            task.callback(*task.args)
        except Exception:  # noqa: BLE001
            log.exception("Scheduled task %r failed", task.name)
        if task.interval is not None and not task.cancelled:
            task.due += task.interval
            task.seq = next(self._seq)
            with self._lock:
                heapq.heappush(self._heap, task)

    def run_pending(self) -> int:
        """Run every task due at the current clock time."""
        now = self.clock.now()
        ran = 0
        while (task := self._pop_due(now)) is not None:
            self._run(task)
            ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        """Move a :class:`ManualClock` forward, firing tasks in due order."""
        if not isinstance(self.clock, ManualClock):
            raise TypeError("advance() requires a ManualClock")
        target = self.clock.now() + max(0.0, seconds)
        return self.advance_to(target)

    def advance_to(self, target: float) -> int:
        if not isinstance(self.clock, ManualClock):
            raise TypeError("advance_to() requires a ManualClock")
        if not math.isfinite(target):
            raise ValueError(f"advance_to() target must be finite, got {target!r}")
        ran = 0
        while (task := self._pop_due(target)) is not None:
            self.clock.set(task.due)
            self._run(task)
            ran += 1
        self.clock.set(target)
        return ran

    # ------------------------------------------------------------------
    # Live driver
    # ------------------------------------------------------------------

    def start(self, poll_interval: float = 1.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(poll_interval,), name="scheduler", daemon=True
        )
        self._thread.start()
        log.info("Scheduler driver started (poll=%.2fs)", poll_interval)

    def _loop(self, poll_interval: float) -> None:
        while not self._stop.wait(poll_interval):
            self.run_pending()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        self.cancel_all()
