"""Tests for retry delay calculation."""

import random

from src.jobs.backoff import compute_backoff_ms
from src.jobs.models import BackoffStrategy


class TestComputeBackoff:
    def test_exponential_doubles_per_attempt(self) -> None:
        strategy = BackoffStrategy(type="exponential", delay_ms=1000, jitter=0)
        delays = [compute_backoff_ms(strategy, n) for n in (1, 2, 3, 4)]
        assert delays == [1000, 2000, 4000, 8000]

    def test_fixed_keeps_base_delay(self) -> None:
        strategy = BackoffStrategy(type="fixed", delay_ms=5000, jitter=0)
        assert {compute_backoff_ms(strategy, n) for n in (1, 2, 5)} == {5000}

    def test_capped_at_max_delay(self) -> None:
        strategy = BackoffStrategy(delay_ms=1000, max_delay_ms=3000, jitter=0)
        assert compute_backoff_ms(strategy, 10) == 3000

    def test_jitter_only_shortens_within_fraction(self) -> None:
        strategy = BackoffStrategy(delay_ms=1000, jitter=0.5)
        rng = random.Random(7)
        for _ in range(50):
            delay = compute_backoff_ms(strategy, 1, rng)
            assert 500 <= delay <= 1000

    def test_zero_attempts_treated_as_first(self) -> None:
        strategy = BackoffStrategy(delay_ms=200, jitter=0)
        assert compute_backoff_ms(strategy, 0) == 200
