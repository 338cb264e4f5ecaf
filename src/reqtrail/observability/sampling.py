"""Tail sampling policy for request log lines.

Errors and slow outliers are always kept; everything else is thinned to a
configured random rate. The checks run in a fixed order (error, slow, random)
so that a slow or failing request can never be dropped by the random draw.
"""

import random
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Literal, Optional, Union

from reqtrail.core.config import Settings, get_settings
from reqtrail.observability.models import LogContext, SamplingDecision
from reqtrail.observability.percentile import PercentileTracker

DEFAULT_SAMPLE_RATE = 0.05

Severity = Literal["error", "warning", "info"]

_KEEP_ALL = SamplingDecision(should_log=True, reason="all")


def _decision_inputs(
    context: Union[LogContext, Mapping[str, Any]],
) -> tuple[Optional[int], Optional[float]]:
    if isinstance(context, LogContext):
        return context.status_code, context.duration_ms
    return context.get("status_code"), context.get("duration_ms")


class TailSampler:
    """Decides whether a finished request's log line is kept.

    Owns the process-wide ``PercentileTracker`` used as the slow threshold.
    """

    def __init__(
        self,
        tracker: Optional[PercentileTracker] = None,
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Initialize the sampler.

        Args:
            tracker: Duration tracker; a default tracker is created if omitted.
            sample_rate: Probability of keeping a baseline (fast, successful) request.
            rng: Random source, injectable for deterministic tests.
        """
        if not 0.0 <= sample_rate <= 1.0:
            raise ValueError("sample_rate must be between 0 and 1")

        self.tracker = tracker or PercentileTracker()
        self.sample_rate = sample_rate
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TailSampler":
        """Build a sampler and its duration tracker from settings."""
        tracker = PercentileTracker(
            capacity=settings.p99_window_size,
            recompute_every=settings.p99_recompute_every,
            initial_threshold_ms=settings.p99_initial_threshold_ms,
        )
        return cls(tracker=tracker, sample_rate=settings.log_sample_rate)

    def should_sample(
        self, status_code: Optional[int], duration_ms: Optional[float]
    ) -> SamplingDecision:
        """Production sampling decision.

        Args:
            status_code: Final HTTP status code, if known.
            duration_ms: Request duration in milliseconds, if known.

        Returns:
            Whether to log the request and why.
        """
        # Always log errors; they stay out of the timing baseline
        if status_code is not None and status_code >= 400:
            return SamplingDecision(should_log=True, reason="error")

        # Always log slow requests (above the tracked p99)
        if duration_ms is not None and duration_ms > self.tracker.get_threshold():
            self.tracker.update(duration_ms)
            return SamplingDecision(should_log=True, reason="slow")

        if duration_ms is not None:
            self.tracker.update(duration_ms)

        if self._rng.random() < self.sample_rate:
            return SamplingDecision(should_log=True, reason="random")

        return SamplingDecision(should_log=False, reason="all")

    def should_sample_request(
        self, context: Union[LogContext, Mapping[str, Any]]
    ) -> SamplingDecision:
        """Production sampling decision for a finished request context."""
        status_code, duration_ms = _decision_inputs(context)
        return self.should_sample(status_code, duration_ms)

    def should_sample_request_dev(
        self, context: Union[LogContext, Mapping[str, Any], None] = None  # noqa: ARG002
    ) -> SamplingDecision:
        """Development sampling decision: every request is kept."""
        return _KEEP_ALL


def severity_for_status(status_code: Optional[int]) -> Severity:
    """Map a final status code to the level a kept log line is emitted at."""
    if status_code is not None and status_code >= 500:
        return "error"
    if status_code is not None and status_code >= 400:
        return "warning"
    return "info"


@lru_cache
def get_sampler() -> TailSampler:
    """Get the process-wide sampler configured from settings."""
    return TailSampler.from_settings(get_settings())


def should_sample_request(
    context: Union[LogContext, Mapping[str, Any]],
) -> SamplingDecision:
    """Sample a finished request with the process-wide sampler."""
    return get_sampler().should_sample_request(context)


def should_sample_request_dev(
    context: Union[LogContext, Mapping[str, Any], None] = None,  # noqa: ARG001
) -> SamplingDecision:
    """Development sampling decision: every request is kept."""
    return _KEEP_ALL
