"""
Retry schedule for adapter calls.

One ExponentialBackoff lives for the duration of a single adapter call
(a list() or one fetch_detail()). It decides whether a failed attempt is
retried and how long to wait first:

- only retryable AdapterErrors are retried (a 404 is not)
- at most max_attempts calls are made, the first one included
- delays grow as min(base * multiplier^retry, max_delay), with a random
  jitter of +/- jitter_range so jobs sharing a flaky site do not retry in
  lockstep
"""

import random

from ui_catalog.crawl.config import CrawlConfig
from ui_catalog.errors import AdapterError


class ExponentialBackoff:
    """
    Retry budget and delay schedule of one adapter call.

    Usage:
        backoff = ExponentialBackoff.for_config(config)
        while True:
            try:
                return await call()
            except AdapterError as e:
                if not backoff.should_retry(e):
                    raise
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
        max_attempts: int = 3,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self.max_attempts = max(1, max_attempts)
        self._attempt = 0

    @classmethod
    def for_config(cls, config: CrawlConfig) -> "ExponentialBackoff":
        """Schedule for one adapter call under the given crawl settings."""
        return cls(
            base_delay=config.backoff_base_delay,
            max_delay=config.backoff_max_delay,
            max_attempts=config.max_attempts,
        )

    @property
    def attempt(self) -> int:
        """Retries handed out so far; equals the number of the last failed call."""
        return self._attempt

    @property
    def attempts_left(self) -> int:
        return self.max_attempts - 1 - self._attempt

    def should_retry(self, error: AdapterError) -> bool:
        return error.retryable and self.attempts_left > 0

    def peek_delay(self) -> float:
        """Delay before jitter for the next retry."""
        return min(self.base_delay * (self.multiplier ** self._attempt), self.max_delay)

    def next_delay(self) -> float:
        """Return the delay before the next retry and use up one attempt."""
        delay = self.peek_delay()
        jitter = delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay + jitter)
