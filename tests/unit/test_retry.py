"""
Unit tests for retry utility functions.
"""

import asyncio

import pytest
from feedcrawl.utils.retry import RetryConfig, compute_backoff_delay, retry_async_with_backoff


@pytest.fixture
def recorded_delays(monkeypatch):
    """Replace asyncio.sleep inside the retry helper and record the delays."""
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("feedcrawl.utils.retry.asyncio.sleep", fake_sleep)
    return delays


class TestRetryConfig:
    """Tests for RetryConfig dataclass."""

    def test_default_config(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 60.0
        assert config.exponential_base == 2.0

    def test_custom_config(self):
        """Test custom configuration."""
        config = RetryConfig(max_retries=5, base_delay=2.0)
        assert config.max_retries == 5
        assert config.base_delay == 2.0

    def test_validation_negative_retries(self):
        """Test that negative retries raises error."""
        with pytest.raises(ValueError, match="max_retries"):
            RetryConfig(max_retries=-1)

    def test_validation_invalid_base_delay(self):
        """Test that zero/negative base_delay raises error."""
        with pytest.raises(ValueError, match="base_delay"):
            RetryConfig(base_delay=0)

    def test_validation_max_delay_less_than_base(self):
        """Test that max_delay < base_delay raises error."""
        with pytest.raises(ValueError, match="max_delay"):
            RetryConfig(base_delay=10.0, max_delay=5.0)

    def test_validation_exponential_base(self):
        with pytest.raises(ValueError, match="exponential_base"):
            RetryConfig(exponential_base=1.0)


class TestComputeBackoffDelay:
    """Tests for the job retry delay schedule."""

    def test_doubles_then_caps(self):
        config = RetryConfig(max_retries=7, base_delay=1.0, max_delay=30.0)
        delays = [compute_backoff_delay(n, config) for n in range(1, 8)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_default_job_policy(self):
        """5s base, 30s cap."""
        config = RetryConfig(max_retries=5, base_delay=5.0, max_delay=30.0)
        delays = [compute_backoff_delay(n, config) for n in range(1, 6)]
        assert delays == [5.0, 10.0, 20.0, 30.0, 30.0]

    def test_rejects_attempt_zero(self):
        with pytest.raises(ValueError, match="start at 1"):
            compute_backoff_delay(0, RetryConfig())


class TestRetryAsyncWithBackoff:
    """Tests for retry_async_with_backoff function."""

    def test_succeeds_on_first_try(self, recorded_delays):
        """Test function that succeeds immediately."""
        call_count = [0]

        async def success_func():
            call_count[0] += 1
            return "success"

        result = asyncio.run(retry_async_with_backoff(success_func))
        assert result == "success"
        assert call_count[0] == 1
        assert recorded_delays == []

    def test_succeeds_after_retries(self, recorded_delays):
        """Test function that succeeds after some failures."""
        call_count = [0]

        async def eventual_success():
            call_count[0] += 1
            if call_count[0] < 3:
                raise ConnectionError("Transient error")
            return "success"

        config = RetryConfig(max_retries=5, base_delay=0.01)
        result = asyncio.run(retry_async_with_backoff(eventual_success, config=config))
        assert result == "success"
        assert call_count[0] == 3

    def test_exhausts_retries(self, recorded_delays):
        """Test that all retries are exhausted and exception is raised."""
        call_count = [0]

        async def always_fails():
            call_count[0] += 1
            raise ValueError("Persistent error")

        config = RetryConfig(max_retries=2, base_delay=0.01)

        with pytest.raises(ValueError, match="Persistent error"):
            asyncio.run(retry_async_with_backoff(always_fails, config=config))

        assert call_count[0] == 3  # Initial + 2 retries

    def test_exponential_backoff_delays(self, recorded_delays):
        """Test that delays follow exponential backoff and respect the cap."""
        async def failing_func():
            raise ConnectionError("Error")

        config = RetryConfig(max_retries=5, base_delay=0.1, max_delay=0.5, exponential_base=2.0)

        with pytest.raises(ConnectionError):
            asyncio.run(retry_async_with_backoff(failing_func, config=config))

        assert recorded_delays == pytest.approx([0.1, 0.2, 0.4, 0.5, 0.5])

    def test_retry_on_specific_exception(self, recorded_delays):
        """Test retrying only on specific exceptions."""
        call_count = [0]

        async def mixed_exceptions():
            call_count[0] += 1
            if call_count[0] == 1:
                raise ConnectionError("Retry this")
            raise ValueError("Don't retry this")

        config = RetryConfig(max_retries=3, base_delay=0.01)

        # Should retry ConnectionError but not ValueError
        with pytest.raises(ValueError, match="Don't retry this"):
            asyncio.run(retry_async_with_backoff(
                mixed_exceptions,
                config=config,
                retry_on=(ConnectionError,)
            ))

        assert call_count[0] == 2  # First call + one retry

    def test_on_retry_callback(self, recorded_delays):
        """Test that on_retry callback is called."""
        retry_info = []

        async def failing_func():
            raise ConnectionError("Error")

        def on_retry_callback(attempt, exception):
            retry_info.append((attempt, str(exception)))

        config = RetryConfig(max_retries=2, base_delay=0.01)

        with pytest.raises(ConnectionError):
            asyncio.run(retry_async_with_backoff(
                failing_func,
                config=config,
                on_retry=on_retry_callback
            ))

        assert retry_info == [(1, "Error"), (2, "Error")]

    def test_should_abort_stops_retrying(self, recorded_delays):
        call_count = [0]

        async def failing_func():
            call_count[0] += 1
            raise ConnectionError("Error")

        config = RetryConfig(max_retries=5, base_delay=0.01)

        with pytest.raises(ConnectionError):
            asyncio.run(retry_async_with_backoff(
                failing_func,
                config=config,
                should_abort=lambda: call_count[0] >= 2,
            ))

        assert call_count[0] == 2
        assert len(recorded_delays) == 1
