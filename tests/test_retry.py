"""
Tests for the retry policy and cancellation token.
"""

import asyncio
import time

import pytest

from mnemonic_maker.cancellation import CancellationToken
from mnemonic_maker.errors import Cancelled, NetworkError
from mnemonic_maker.retry import retry


class FlakyOperation:
    """Fails a fixed number of times before succeeding."""

    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise NetworkError(f"failure {self.calls}")
        return self.result


class TestRetry:
    """Test retry()."""

    def test_success_first_attempt(self):
        """Test an operation that succeeds immediately is called once."""
        operation = FlakyOperation(failures=0)

        assert asyncio.run(retry(operation, attempts=3, delay=0)) == "ok"
        assert operation.calls == 1

    @pytest.mark.parametrize("failures", [1, 2])
    def test_succeeds_after_failures(self, failures):
        """Test k failures followed by success make k+1 calls."""
        operation = FlakyOperation(failures=failures)

        assert asyncio.run(retry(operation, attempts=3, delay=0)) == "ok"
        assert operation.calls == failures + 1

    def test_last_error_propagates(self):
        """Test the final attempt's error is raised unchanged."""
        operation = FlakyOperation(failures=10)

        with pytest.raises(NetworkError, match="failure 3"):
            asyncio.run(retry(operation, attempts=3, delay=0))
        assert operation.calls == 3

    def test_single_attempt_means_no_retry(self):
        """Test attempts=1 calls the operation exactly once."""
        operation = FlakyOperation(failures=1)

        with pytest.raises(NetworkError):
            asyncio.run(retry(operation, attempts=1, delay=0))
        assert operation.calls == 1

    def test_invalid_attempts(self):
        """Test attempts below 1 are rejected."""
        with pytest.raises(ValueError):
            asyncio.run(retry(FlakyOperation(failures=0), attempts=0))

    def test_waits_between_attempts(self):
        """Test the fixed delay is applied between attempts."""
        operation = FlakyOperation(failures=1)

        start = time.monotonic()
        asyncio.run(retry(operation, attempts=2, delay=0.05))

        assert time.monotonic() - start >= 0.05

    def test_cancel_during_wait(self):
        """Test cancelling during the backoff stops further attempts."""
        operation = FlakyOperation(failures=10)

        async def scenario():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            start = time.monotonic()
            with pytest.raises(Cancelled):
                await retry(operation, attempts=3, delay=5.0, cancel_token=token)
            return time.monotonic() - start

        elapsed = asyncio.run(scenario())

        assert operation.calls == 1
        assert elapsed < 2.0

    def test_already_cancelled_token(self):
        """Test a token cancelled before the first wait aborts the retry."""
        operation = FlakyOperation(failures=10)

        async def scenario():
            token = CancellationToken()
            token.cancel()
            await retry(operation, attempts=3, delay=0, cancel_token=token)

        with pytest.raises(Cancelled):
            asyncio.run(scenario())
        assert operation.calls == 1

    def test_lambda_returning_coroutine(self):
        """Test a lambda wrapping a coroutine function is awaited on every attempt."""
        calls = []

        async def fetch(word):
            calls.append(word)
            if len(calls) < 3:
                raise NetworkError(f"failure {len(calls)}")
            return f"{word} fetched"

        result = asyncio.run(retry(lambda: fetch("lune"), attempts=3, delay=0))

        assert result == "lune fetched"
        assert calls == ["lune", "lune", "lune"]

    def test_lambda_last_error_propagates(self):
        """Test the last error of a lambda-wrapped coroutine is raised, not a coroutine."""
        async def fetch():
            raise NetworkError("offline")

        with pytest.raises(NetworkError, match="offline"):
            asyncio.run(retry(lambda: fetch(), attempts=2, delay=0))

    def test_cancelled_error_is_not_retried(self):
        """Test a Cancelled raised by the operation itself is not retried."""
        calls = []

        async def operation():
            calls.append(1)
            raise Cancelled()

        with pytest.raises(Cancelled):
            asyncio.run(retry(operation, attempts=3, delay=0))
        assert len(calls) == 1


class TestCancellationToken:
    """Test CancellationToken."""

    def test_initial_state(self):
        """Test a new token is not cancelled."""
        assert CancellationToken().is_cancelled is False

    def test_cancel(self):
        """Test cancel sets the flag."""
        token = CancellationToken()
        token.cancel()

        assert token.is_cancelled is True

    def test_wait_timeout(self):
        """Test wait returns False when the timeout elapses first."""
        token = CancellationToken()

        assert asyncio.run(token.wait(timeout=0.01)) is False

    def test_wait_returns_when_cancelled(self):
        """Test wait wakes up on cancel."""
        async def scenario():
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.01, token.cancel)
            return await token.wait(timeout=5)

        assert asyncio.run(scenario()) is True
