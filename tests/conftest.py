"""Shared pytest fixtures and configuration."""

import random

import pytest
import structlog

from reqtrail.core.config import get_settings
from reqtrail.observability.percentile import PercentileTracker
from reqtrail.observability.sampling import TailSampler, get_sampler


@pytest.fixture(autouse=True)
def reset_observability_state():
    """Isolate tests from cached settings, the shared sampler and logging config.

    ``configure_logging`` caches loggers on first use, which would stop
    ``structlog.testing.capture_logs`` from seeing later log calls.
    """
    get_settings.cache_clear()
    get_sampler.cache_clear()
    yield
    get_settings.cache_clear()
    get_sampler.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def tracker() -> PercentileTracker:
    """A fresh duration tracker with default tuning."""
    return PercentileTracker()


@pytest.fixture
def sampler(tracker: PercentileTracker) -> TailSampler:
    """A sampler with the default 5% rate and a seeded random source."""
    return TailSampler(tracker=tracker, sample_rate=0.05, rng=random.Random(1234))


@pytest.fixture
def keep_all_sampler() -> TailSampler:
    """A sampler that keeps every baseline request."""
    return TailSampler(sample_rate=1.0, rng=random.Random(0))


@pytest.fixture
def drop_all_sampler() -> TailSampler:
    """A sampler that drops every baseline request."""
    return TailSampler(sample_rate=0.0, rng=random.Random(0))
