"""Unit tests for retry logic with exponential backoff."""

import pytest
from unittest.mock import Mock

from expense_ocr.pipeline.resilience.retry import (
    RetryConfig,
    async_retry_with_backoff,
    retry_with_backoff,
)

FAST = RetryConfig(max_attempts=3, initial_delay_seconds=0.0, jitter=False)


class TestRetryBasics:
    """Tests for basic retry functionality."""

    def test_immediate_success_no_retry(self):
        """Test function that succeeds immediately doesn't retry."""
        func = Mock(return_value="success")

        assert retry_with_backoff(func, FAST, (Exception,)) == "success"
        func.assert_called_once()

    def test_retries_on_specified_exception(self):
        """Test retry happens on specified exception type."""
        func = Mock(side_effect=[ConnectionError("Connection failed"), "success"])

        assert retry_with_backoff(func, FAST, (ConnectionError,)) == "success"
        assert func.call_count == 2

    def test_raises_after_max_attempts(self):
        """Test raises the last exception after exhausting retries."""
        func = Mock(side_effect=ValueError("Service error"))

        with pytest.raises(ValueError, match="Service error"):
            retry_with_backoff(func, FAST, (ValueError,))
        assert func.call_count == 3

    def test_does_not_retry_on_other_exceptions(self):
        """Test does not retry on non-specified exceptions."""
        func = Mock(side_effect=TypeError("Wrong type"))

        with pytest.raises(TypeError):
            retry_with_backoff(func, FAST, (ValueError,))
        func.assert_called_once()

    def test_passes_arguments_through(self):
        func = Mock(return_value="ok")

        retry_with_backoff(func, FAST, (Exception,), "org/key.pdf", timeout=5)

        func.assert_called_once_with("org/key.pdf", timeout=5)

    def test_zero_attempts_is_an_error(self):
        with pytest.raises(RuntimeError):
            retry_with_backoff(Mock(), RetryConfig(max_attempts=0), (Exception,))


class TestRetryConfiguration:
    """Tests for retry configuration."""

    def test_delay_grows_exponentially(self):
        config = RetryConfig(initial_delay_seconds=1.0, exponential_base=2.0, jitter=False)

        assert config.delay_for(0) == 1.0
        assert config.delay_for(1) == 2.0
        assert config.delay_for(2) == 4.0

    def test_delay_capped_at_max(self):
        config = RetryConfig(initial_delay_seconds=1.0, max_delay_seconds=3.0, jitter=False)

        assert config.delay_for(10) == 3.0

    def test_jitter_stays_within_bounds(self):
        config = RetryConfig(initial_delay_seconds=1.0, jitter=True)

        for _ in range(20):
            assert 0.5 <= config.delay_for(0) <= 1.5


class TestAsyncRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("db down")
            return "row"

        assert await async_retry_with_backoff(flaky, FAST, (ConnectionError,)) == "row"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_propagates(self):
        calls = []

        async def broken():
            calls.append(1)
            raise KeyError("job_id")

        with pytest.raises(KeyError):
            await async_retry_with_backoff(broken, FAST, (ConnectionError,))
        assert len(calls) == 1
