"""Retry pacing for Registry v2 API calls.

Registries answer throttled catalog requests with 429 and usually say how
long to wait in a Retry-After header (seconds or an HTTP date). That hint
is honored when present; otherwise the wait grows exponentially with jitter.
"""

import logging
import random
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from scanrunner.consts import REGISTRY_RETRY_BASE_DELAY, REGISTRY_RETRY_MAX_DELAY

logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds to wait according to a Retry-After header, or None if absent or unparseable."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable Retry-After: {value!r}")
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - (now or datetime.now(UTC))).total_seconds())


class RateLimiter:
    """Backoff state shared by the requests of one registry catalog client.

    Each retryable response (429 or 5xx) counts as a consecutive error;
    a successful response resets the count.
    """

    def __init__(
        self,
        initial_delay: float = REGISTRY_RETRY_BASE_DELAY,
        max_delay: float = REGISTRY_RETRY_MAX_DELAY,
        backoff_factor: float = 2.0,
        jitter_factor: float = 0.1,
    ):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter_factor = jitter_factor
        self._next_delay = initial_delay
        self._consecutive_errors = 0

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    def reset(self) -> None:
        """Forget previous failures after a successful registry response."""
        self._next_delay = self.initial_delay
        self._consecutive_errors = 0

    def backoff(self, retry_after: str | None = None) -> float:
        """Record a retryable response and return the seconds to wait.

        Args:
            retry_after: Retry-After header of the response, if any. The
                registry's hint wins over the computed delay, capped at
                max_delay.
        """
        self._consecutive_errors += 1

        hinted = parse_retry_after(retry_after)
        if hinted is not None:
            return min(hinted, self.max_delay)

        delay = self._next_delay
        self._next_delay = min(self._next_delay * self.backoff_factor, self.max_delay)
        # +/- jitter_factor of the delay
        jitter = delay * self.jitter_factor * (2 * random.random() - 1)
        return max(0.0, delay + jitter)
