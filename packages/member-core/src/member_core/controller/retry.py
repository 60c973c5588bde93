"""
Requeue delays with exponential backoff.

Failed ticks of the same cluster are retried with growing delays plus
jitter, so many clusters failing against the same coordinator do not
retry in lockstep.
"""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """
    Backoff parameters for requeued clusters.

    Attributes:
        min_wait_seconds: Delay before the first retry (default 1.0)
        max_wait_seconds: Upper bound on the base delay (default 60.0)
        exponential_base: Growth factor per attempt (default 2.0)
        jitter_fraction: Fraction of the delay added as random jitter (default 0.5)

    Example:
        config = RetryConfig(min_wait_seconds=2.0)
        config.next_delay(attempt=1)
        # 4.0 to 6.0 seconds
    """

    min_wait_seconds: float = 1.0
    max_wait_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter_fraction: float = 0.5

    def next_delay(self, attempt: int) -> float:
        """
        Delay in seconds before retry number `attempt` (0-based).

        Formula: min(max_wait, min_wait * base^attempt) + random(0, wait * jitter)
        """
        wait = min(
            self.max_wait_seconds,
            self.min_wait_seconds * (self.exponential_base**attempt),
        )
        jitter = random.uniform(0, wait * self.jitter_fraction)
        return wait + jitter
