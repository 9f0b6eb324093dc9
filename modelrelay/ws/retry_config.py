"""Retry configuration and exponential backoff utilities.

Used by the worker agent to space out reconnect attempts to the broker.
"""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Configuration for reconnect behavior with exponential backoff.

    Attributes:
        max_attempts: Consecutive failed attempts tolerated before giving up (default: 10)
        initial_delay_ms: Base delay in milliseconds (default: 1000)
        max_delay_ms: Maximum delay cap in milliseconds (default: 30000)
        backoff_multiplier: Multiplier for exponential backoff (default: 2.0)
        jitter_factor: Jitter range as fraction of delay (default: 0.0 = none)

    Example:
        ```python
        config = RetryConfig(max_attempts=5, initial_delay_ms=500)

        attempt = 0
        while attempt < config.max_attempts:
            try:
                await connect()
                attempt = 0
            except ConnectionError:
                await asyncio.sleep(calculate_retry_delay(attempt, config) / 1000)
                attempt += 1
        ```
    """

    max_attempts: int = 10
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.0


def calculate_retry_delay(attempt: int, config: RetryConfig) -> int:
    """Calculate delay in milliseconds for a retry attempt.

    - Base delay = initial_delay_ms * (multiplier ^ attempt)
    - Jitter = ±(delay * jitter_factor)
    - Result = max(0, min(max_delay, base_delay + jitter))

    Args:
        attempt: 0-based attempt number (0 for the first retry)
        config: RetryConfig

    Returns:
        Delay in milliseconds
    """
    base_delay = config.initial_delay_ms * (config.backoff_multiplier ** max(0, attempt))
    delay = min(float(config.max_delay_ms), base_delay)

    if config.jitter_factor > 0:
        jitter = delay * config.jitter_factor
        delay += random.uniform(-jitter, jitter)

    return int(max(0.0, min(float(config.max_delay_ms), delay)))


def should_retry(attempt: int, config: RetryConfig) -> bool:
    """Whether another attempt is allowed after ``attempt`` consecutive failures."""
    return attempt < config.max_attempts
