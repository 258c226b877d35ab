"""Single logical execution context for playback, capture and scheduling.

Every state change in wavetuner happens on one loop: stream events from the
media backend, PCM blocks for the capture tap, the one-second schedule and
elapsed-time ticks, the retry timer, and commands issued from the CLI thread.
Nothing scheduled on the loop runs concurrently with anything else on it,
so components need no locks of their own.

Two implementations share the interface:

``EventLoop``
    A dispatcher thread driven by ``time.monotonic``. Used by the CLI.
``ManualLoop``
    A virtual clock advanced explicitly by tests. Nothing runs until
    ``run_pending()`` or ``advance()`` is called.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Optional

from loguru import logger

from wavetuner.constants import BACKLOG_WARN_THRESHOLD

_counter = itertools.count()


class ScheduledCall:
    """Handle for a one-shot or repeating timer registered on a loop."""

    def __init__(self, when: float, callback: Callable, args: tuple, interval: Optional[float] = None):
        self.when = when
        self.callback = callback
        self.args = args
        self.interval = interval
        self.cancelled = False
        self._seq = next(_counter)

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: ScheduledCall) -> bool:
        return (self.when, self._seq) < (other.when, other._seq)

    def _rearm(self) -> None:
        self.when += self.interval
        self._seq = next(_counter)


class Loop(ABC):
    """Interface shared by the threaded and the manual loop."""

    @abstractmethod
    def time(self) -> float:
        """Monotonic loop time in seconds."""
        ...

    @abstractmethod
    def post(self, callback: Callable, *args: Any) -> None:
        """Queue a callback to run on the loop as soon as possible."""
        ...

    @abstractmethod
    def _add_timer(self, timer: ScheduledCall) -> None:
        ...

    @abstractmethod
    def call(self, callback: Callable, *args: Any) -> Any:
        """Run a callback on the loop and return its result (or raise)."""
        ...

    def call_later(self, delay: float, callback: Callable, *args: Any) -> ScheduledCall:
        timer = ScheduledCall(self.time() + delay, callback, args)
        self._add_timer(timer)
        return timer

    def call_every(self, interval: float, callback: Callable, *args: Any) -> ScheduledCall:
        """Run a callback every *interval* seconds, first after one interval."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        timer = ScheduledCall(self.time() + interval, callback, args, interval=interval)
        self._add_timer(timer)
        return timer


class EventLoop(Loop):
    """Loop backed by a dedicated dispatcher thread."""

    def __init__(self, name: str = "wavetuner-loop"):
        self._name = name
        self._cond = threading.Condition()
        self._ready: deque[tuple[Callable, tuple]] = deque()
        self._timers: list[ScheduledCall] = []
        self._thread: threading.Thread | None = None
        self._running = False
        self._backlog_warned = False

    def time(self) -> float:
        return time.monotonic()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def in_loop_thread(self) -> bool:
        return self._thread is threading.current_thread()

    def post(self, callback: Callable, *args: Any) -> None:
        with self._cond:
            self._ready.append((callback, args))
            backlog = len(self._ready)
            self._cond.notify()
        if backlog > BACKLOG_WARN_THRESHOLD and not self._backlog_warned:
            self._backlog_warned = True
            logger.warning(f"Event loop backlog at {backlog} callbacks; encoder may be falling behind")
        elif backlog <= BACKLOG_WARN_THRESHOLD // 2:
            self._backlog_warned = False

    def _add_timer(self, timer: ScheduledCall) -> None:
        with self._cond:
            heapq.heappush(self._timers, timer)
            self._cond.notify()

    def call(self, callback: Callable, *args: Any) -> Any:
        if self.in_loop_thread() or not self._running:
            return callback(*args)

        future: Future = Future()

        def runner():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(callback(*args))
            except BaseException as e:
                future.set_exception(e)

        self.post(runner)
        return future.result()

    def _run(self) -> None:
        while True:
            with self._cond:
                while self._running and not self._ready and not self._due_timer():
                    timeout = None
                    if self._timers:
                        timeout = max(0.0, self._timers[0].when - self.time())
                    self._cond.wait(timeout)
                if not self._running:
                    return
                batch = list(self._ready)
                self._ready.clear()
                now = self.time()
                while self._timers and self._timers[0].when <= now:
                    timer = heapq.heappop(self._timers)
                    if timer.cancelled:
                        continue
                    if timer.interval is not None:
                        timer._rearm()
                        heapq.heappush(self._timers, timer)
                    batch.append((self._fire, (timer,)))

            for callback, args in batch:
                try:
                    callback(*args)
                except Exception:
                    logger.exception(f"Unhandled error in loop callback {callback!r}")

    def _due_timer(self) -> bool:
        return bool(self._timers) and self._timers[0].when <= self.time()

    @staticmethod
    def _fire(timer: ScheduledCall) -> None:
        if not timer.cancelled:
            timer.callback(*timer.args)


class ManualLoop(Loop):
    """Deterministic loop for tests: time only moves when ``advance()`` is called.

    Exceptions raised by callbacks propagate to the caller of
    ``run_pending()``/``advance()`` so tests see them.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._ready: deque[tuple[Callable, tuple]] = deque()
        self._timers: list[ScheduledCall] = []

    def time(self) -> float:
        return self._now

    def post(self, callback: Callable, *args: Any) -> None:
        self._ready.append((callback, args))

    def _add_timer(self, timer: ScheduledCall) -> None:
        heapq.heappush(self._timers, timer)

    def call(self, callback: Callable, *args: Any) -> Any:
        self.run_pending()
        result = callback(*args)
        self.run_pending()
        return result

    @property
    def pending_timers(self) -> list[ScheduledCall]:
        return sorted(t for t in self._timers if not t.cancelled)

    def run_pending(self) -> None:
        while self._ready:
            callback, args = self._ready.popleft()
            callback(*args)

    def advance(self, seconds: float) -> None:
        """Move virtual time forward, firing due timers in order."""
        target = self._now + seconds
        self.run_pending()
        while self._timers and self._timers[0].when <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = timer.when
            if timer.interval is not None:
                timer._rearm()
                heapq.heappush(self._timers, timer)
            timer.callback(*timer.args)
            self.run_pending()
        self._now = target
