"""Retry delay calculation."""

import random

from src.jobs.models import BackoffStrategy


def compute_backoff_ms(
    strategy: BackoffStrategy,
    attempts: int,
    rng: random.Random | None = None,
) -> int:
    """Delay before the next attempt after ``attempts`` failures.

    Exponential strategies double the base delay per failed attempt;
    fixed strategies keep it. The result is capped at ``max_delay_ms``
    and then a ``jitter`` fraction of it is randomized downwards so
    retries of jobs that failed together spread out.
    """
    attempts = max(attempts, 1)
    if strategy.type == "exponential":
        delay = strategy.delay_ms * (2 ** (attempts - 1))
    else:
        delay = strategy.delay_ms
    delay = min(delay, strategy.max_delay_ms)

    if strategy.jitter and delay:
        rng = rng or random
        delay = delay * (1 - strategy.jitter * rng.random())
    return int(delay)
