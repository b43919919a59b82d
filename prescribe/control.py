"""Control context: a single thread for ticks and keyed timers."""

import heapq
import itertools
import logging
import time
from threading import Thread, Condition
from typing import Callable, Dict, Hashable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ControlLoop:
    """Runs tick callbacks at a fixed interval and delayed callbacks by key.

    Everything runs on one thread, in order, so segment boundaries and retry
    timers never race each other. Scheduling a key that already has a pending
    job replaces that job.
    """

    def __init__(self, tick_interval: float = 0.1, clock: Callable[[], float] = time.monotonic):
        self.tick_interval = tick_interval
        self.clock = clock
        self._tickers: List[Callable[[], None]] = []
        self._heap: List[Tuple[float, int, Hashable]] = []
        self._jobs: Dict[Hashable, Tuple[float, int, Callable[[], None]]] = {}
        self._counter = itertools.count()
        self._cond = Condition()
        self._thread: Optional[Thread] = None
        self._running = False
        self._next_tick: Optional[float] = None

    # ------------------------------------------------------------------ registration

    def add_ticker(self, callback: Callable[[], None]) -> None:
        with self._cond:
            self._tickers.append(callback)

    def remove_ticker(self, callback: Callable[[], None]) -> None:
        with self._cond:
            if callback in self._tickers:
                self._tickers.remove(callback)

    def schedule(self, key: Hashable, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``delay`` seconds, replacing any job under ``key``."""
        with self._cond:
            due = self.clock() + max(0.0, delay)
            seq = next(self._counter)
            self._jobs[key] = (due, seq, callback)
            heapq.heappush(self._heap, (due, seq, key))
            self._cond.notify()
        logger.debug(f"Scheduled {key!r} in {delay:.2f}s")

    def cancel(self, key: Hashable) -> bool:
        with self._cond:
            return self._jobs.pop(key, None) is not None

    def is_scheduled(self, key: Hashable) -> bool:
        with self._cond:
            return key in self._jobs

    def pending_count(self) -> int:
        with self._cond:
            return len(self._jobs)

    # ------------------------------------------------------------------ execution

    def run_due(self, now: Optional[float] = None) -> int:
        """Run every job due at ``now``; returns how many ran."""
        now = self.clock() if now is None else now
        due_jobs = []
        with self._cond:
            while self._heap and self._heap[0][0] <= now:
                due, seq, key = heapq.heappop(self._heap)
                job = self._jobs.get(key)
                # Stale heap entry for a replaced or cancelled job
                if job is None or job[1] != seq:
                    continue
                del self._jobs[key]
                due_jobs.append((key, job[2]))

        for key, callback in due_jobs:
            try:
                callback()
            except Exception as e:
                logger.error(f"Scheduled job {key!r} failed: {e}", exc_info=True)
        return len(due_jobs)

    def tick(self) -> None:
        with self._cond:
            tickers = list(self._tickers)
        for callback in tickers:
            try:
                callback()
            except Exception as e:
                logger.error(f"Tick callback failed: {e}", exc_info=True)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._next_tick = self.clock() + self.tick_interval
        self._thread = Thread(target=self._run, daemon=True)
        self._thread.name = "ControlLoopThread"
        self._thread.start()
        logger.info(f"Control loop started ({self.tick_interval * 1000:.0f}ms ticks)")

    def stop(self, timeout: float = 2.0) -> None:
        with self._cond:
            self._running = False
            self._cond.notify()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Control loop thread did not stop cleanly")
        self._thread = None
        cancelled = self.pending_count()
        if cancelled:
            logger.info(f"Control loop stopped with {cancelled} pending jobs")

    def _run(self) -> None:
        while True:
            with self._cond:
                if not self._running:
                    break
                wake_at = self._next_tick
                if self._heap:
                    wake_at = min(wake_at, self._heap[0][0])
                timeout = wake_at - self.clock()
                if timeout > 0:
                    self._cond.wait(timeout)
                    continue

            now = self.clock()
            # Ticks missed while a callback ran long are replayed so the
            # recording clock keeps pace with wall time.
            while now >= self._next_tick:
                self._next_tick += self.tick_interval
                self.tick()
            self.run_due(now)
