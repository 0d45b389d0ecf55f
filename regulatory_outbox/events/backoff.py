"""Retry delay policy for failed outbox records."""
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class RetryBackoff:
    """Exponential backoff with an upper bound. A zero base retries on the next tick."""

    base_seconds: float = 0.0
    cap_seconds: float = 300.0
    multiplier: float = 2.0

    def next_delay(self, attempts: int) -> timedelta:
        """Delay before the next pass of a record that has failed ``attempts`` times."""
        if self.base_seconds <= 0:
            return timedelta(0)
        attempt = max(attempts, 1)
        delay = self.base_seconds * (self.multiplier ** (attempt - 1))
        return timedelta(seconds=min(delay, self.cap_seconds))
