"""Tests for registry retry pacing."""

from datetime import UTC, datetime

from scanrunner.registry.rate_limiter import RateLimiter, parse_retry_after


class TestParseRetryAfter:
    """Tests for parse_retry_after()."""

    def test_seconds(self) -> None:
        """Test a delta-seconds value."""
        assert parse_retry_after("120") == 120.0

    def test_http_date(self) -> None:
        """Test an HTTP date is converted to the remaining seconds."""
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

        assert parse_retry_after("Mon, 01 Jan 2024 12:00:30 GMT", now=now) == 30.0
        assert parse_retry_after("Mon, 01 Jan 2024 11:00:00 GMT", now=now) == 0.0

    def test_missing_or_invalid(self) -> None:
        """Test absent and garbage values give no hint."""
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("soon") is None


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_exponential_backoff(self) -> None:
        """Test delays grow by the factor up to max_delay."""
        limiter = RateLimiter(initial_delay=1.0, max_delay=5.0, jitter_factor=0.0)

        assert [limiter.backoff() for _ in range(4)] == [1.0, 2.0, 4.0, 5.0]
        assert limiter.consecutive_errors == 4

    def test_retry_after_wins(self) -> None:
        """Test a registry hint replaces the computed delay, capped at max_delay."""
        limiter = RateLimiter(initial_delay=1.0, max_delay=10.0, jitter_factor=0.0)

        assert limiter.backoff("7") == 7.0
        assert limiter.backoff("600") == 10.0
        assert limiter.backoff() == 1.0
        assert limiter.consecutive_errors == 3

    def test_jitter_bounds(self) -> None:
        """Test jitter stays within the configured fraction."""
        limiter = RateLimiter(initial_delay=10.0, jitter_factor=0.1)

        assert 9.0 <= limiter.backoff() <= 11.0

    def test_reset(self) -> None:
        """Test a success restarts from the initial delay."""
        limiter = RateLimiter(initial_delay=1.0, jitter_factor=0.0)
        limiter.backoff()
        limiter.backoff()

        limiter.reset()

        assert limiter.consecutive_errors == 0
        assert limiter.backoff() == 1.0
