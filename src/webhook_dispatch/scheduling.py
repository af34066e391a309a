"""Deferred execution of retry callbacks.

ThreadingScheduler runs callbacks on daemon timer threads. ManualScheduler keeps
a virtual clock that only moves when ``advance()`` is called, so retry timing
can be exercised without waiting on the wall clock.
"""

import heapq
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

_job_ids = itertools.count(1)


@dataclass
class ScheduledJob:
    delay_ms: float
    key: str | None = None
    id: int = field(default_factory=lambda: next(_job_ids))


class Scheduler(ABC):
    @abstractmethod
    def call_later(
        self, delay_ms: float, callback: Callable[[], None], key: str | None = None
    ) -> ScheduledJob:
        """Run ``callback`` once, ``delay_ms`` milliseconds from now."""

    @abstractmethod
    def cancel(self, key: str) -> int:
        """Cancel every pending job scheduled under ``key``. Returns how many."""

    @abstractmethod
    def pending_count(self, key: str | None = None) -> int: ...

    def shutdown(self) -> None:
        """Drop all pending jobs."""


class ThreadingScheduler(Scheduler):
    """Scheduler backed by threading.Timer."""

    def __init__(self):
        self._jobs: dict[int, tuple[ScheduledJob, threading.Timer]] = {}
        self._lock = threading.Lock()

    def call_later(
        self, delay_ms: float, callback: Callable[[], None], key: str | None = None
    ) -> ScheduledJob:
        job = ScheduledJob(delay_ms=delay_ms, key=key)
        timer = threading.Timer(delay_ms / 1000.0, self._run, args=(job, callback))
        timer.daemon = True
        with self._lock:
            self._jobs[job.id] = (job, timer)
        timer.start()
        return job

    def _run(self, job: ScheduledJob, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._jobs.pop(job.id, None) is None:
                return  # cancelled
        try:
            callback()
        except Exception:
            logger.exception("Scheduled job %s (key=%s) raised", job.id, job.key)

    def cancel(self, key: str) -> int:
        with self._lock:
            ids = [job_id for job_id, (job, _) in self._jobs.items() if job.key == key]
            timers = [self._jobs.pop(job_id)[1] for job_id in ids]
        for timer in timers:
            timer.cancel()
        return len(timers)

    def pending_count(self, key: str | None = None) -> int:
        with self._lock:
            if key is None:
                return len(self._jobs)
            return sum(1 for job, _ in self._jobs.values() if job.key == key)

    def shutdown(self) -> None:
        with self._lock:
            timers = [timer for _, timer in self._jobs.values()]
            self._jobs.clear()
        for timer in timers:
            timer.cancel()


class ManualScheduler(Scheduler):
    """Scheduler driven by a virtual millisecond clock."""

    def __init__(self):
        self._now_ms = 0.0
        self._queue: list[tuple[float, int, ScheduledJob, Callable[[], None]]] = []
        self._lock = threading.Lock()
        self.delays: list[float] = []

    @property
    def now_ms(self) -> float:
        return self._now_ms

    def call_later(
        self, delay_ms: float, callback: Callable[[], None], key: str | None = None
    ) -> ScheduledJob:
        job = ScheduledJob(delay_ms=delay_ms, key=key)
        with self._lock:
            heapq.heappush(self._queue, (self._now_ms + delay_ms, job.id, job, callback))
            self.delays.append(delay_ms)
        return job

    def _pop_due(self, until_ms: float | None):
        with self._lock:
            if not self._queue:
                return None
            if until_ms is not None and self._queue[0][0] > until_ms:
                return None
            due, _, job, callback = heapq.heappop(self._queue)
            self._now_ms = max(self._now_ms, due)
            return job, callback

    def advance(self, ms: float) -> int:
        """Move the clock forward, running jobs that come due in order. Returns jobs run."""
        target = self._now_ms + ms
        ran = 0
        while (item := self._pop_due(target)) is not None:
            self._execute(*item)
            ran += 1
        self._now_ms = target
        return ran

    def run_until_idle(self, max_jobs: int = 1000) -> int:
        """Run jobs (and jobs they schedule) until nothing is pending."""
        ran = 0
        while ran < max_jobs and (item := self._pop_due(None)) is not None:
            self._execute(*item)
            ran += 1
        return ran

    def _execute(self, job: ScheduledJob, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Scheduled job %s (key=%s) raised", job.id, job.key)

    def cancel(self, key: str) -> int:
        with self._lock:
            kept = [item for item in self._queue if item[2].key != key]
            cancelled = len(self._queue) - len(kept)
            heapq.heapify(kept)
            self._queue = kept
        return cancelled

    def pending_count(self, key: str | None = None) -> int:
        with self._lock:
            if key is None:
                return len(self._queue)
            return sum(1 for item in self._queue if item[2].key == key)

    def shutdown(self) -> None:
        with self._lock:
            self._queue.clear()
