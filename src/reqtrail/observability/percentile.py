"""Moving percentile estimate of request durations.

Used as an adaptive "slow request" cutoff: a fixed threshold would be wrong at
different load levels, so the tracker keeps a bounded window of recent
durations and periodically re-derives the 99th percentile from it.
"""

import math
import threading
from collections import deque

DEFAULT_WINDOW_SIZE = 1000
DEFAULT_RECOMPUTE_EVERY = 100
DEFAULT_PERCENTILE = 0.99
DEFAULT_THRESHOLD_MS = 1000.0


class PercentileTracker:
    """Bounded FIFO window of durations with a cached percentile threshold.

    The threshold is only recomputed when the window length reaches a positive
    multiple of ``recompute_every``, so sorting happens at most once every
    ``recompute_every`` updates. Until the first recomputation the initial
    threshold is returned.

    A lock guards the window and the cached threshold, so one tracker can be
    shared between the event loop and threadpool workers.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_WINDOW_SIZE,
        recompute_every: int = DEFAULT_RECOMPUTE_EVERY,
        percentile: float = DEFAULT_PERCENTILE,
        initial_threshold_ms: float = DEFAULT_THRESHOLD_MS,
    ) -> None:
        """Initialize the tracker.

        Args:
            capacity: Maximum number of samples kept; oldest are evicted first.
            recompute_every: Recompute the threshold every this many samples.
            percentile: Percentile to track, as a fraction in (0, 1).
            initial_threshold_ms: Threshold returned before the first recomputation.
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if recompute_every <= 0:
            raise ValueError("recompute_every must be positive")
        if not 0.0 < percentile < 1.0:
            raise ValueError("percentile must be between 0 and 1")

        self._durations: deque[float] = deque(maxlen=capacity)
        self._recompute_every = recompute_every
        self._percentile = percentile
        self._threshold = float(initial_threshold_ms)
        self._recompute_count = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._durations.maxlen or 0

    @property
    def sample_count(self) -> int:
        """Number of samples currently held in the window."""
        return len(self._durations)

    @property
    def recompute_count(self) -> int:
        """Number of times the threshold has been recomputed."""
        return self._recompute_count

    def update(self, duration_ms: float) -> None:
        """Record a request duration, recomputing the threshold when due.

        Args:
            duration_ms: The request duration in milliseconds.
        """
        with self._lock:
            self._durations.append(duration_ms)

            length = len(self._durations)
            if length >= self._recompute_every and length % self._recompute_every == 0:
                ordered = sorted(self._durations)
                index = math.floor(length * self._percentile)
                if index < len(ordered):
                    self._threshold = float(ordered[index])
                self._recompute_count += 1

    def get_threshold(self) -> float:
        """Get the current slow-request threshold in milliseconds."""
        with self._lock:
            return self._threshold
