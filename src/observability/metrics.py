import threading
import time
from collections import defaultdict
from typing import Callable


class MetricsCollector:
    """Rolling-window counts of webhook delivery outcomes, overall and per event type."""

    def __init__(
        self,
        window_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window_seconds = window_seconds
        self._clock = clock
        # (timestamp, event_type) pairs
        self._successes: list[tuple[float, str | None]] = []
        self._failures: list[tuple[float, str | None]] = []
        self._lock = threading.Lock()

    def record_success(self, event_type: str | None = None) -> None:
        with self._lock:
            self._successes.append((self._clock(), event_type))

    def record_failure(self, event_type: str | None = None) -> None:
        with self._lock:
            self._failures.append((self._clock(), event_type))

    def _windowed(self) -> tuple[list[str | None], list[str | None]]:
        cutoff = self._clock() - self._window_seconds
        self._successes = [e for e in self._successes if e[0] >= cutoff]
        self._failures = [e for e in self._failures if e[0] >= cutoff]
        return [e[1] for e in self._successes], [e[1] for e in self._failures]

    def failure_rate(self) -> float:
        """Failure rate in the current rolling window (0.0 to 1.0)."""
        with self._lock:
            successes, failures = self._windowed()
        total = len(successes) + len(failures)
        if total == 0:
            return 0.0
        return len(failures) / total

    def total_in_window(self) -> int:
        with self._lock:
            successes, failures = self._windowed()
        return len(successes) + len(failures)

    def failure_count_in_window(self) -> int:
        with self._lock:
            return len(self._windowed()[1])

    def success_count_in_window(self) -> int:
        with self._lock:
            return len(self._windowed()[0])

    def counts_by_event_type(self) -> dict[str, dict[str, int]]:
        """{"order.created": {"delivered": 3, "failed": 1}, ...} for the current window."""
        counts: dict[str, dict[str, int]] = defaultdict(lambda: {"delivered": 0, "failed": 0})
        with self._lock:
            successes, failures = self._windowed()
        for event_type in successes:
            counts[event_type or "unknown"]["delivered"] += 1
        for event_type in failures:
            counts[event_type or "unknown"]["failed"] += 1
        return dict(counts)

    def reset(self) -> None:
        with self._lock:
            self._successes.clear()
            self._failures.clear()
