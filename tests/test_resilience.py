"""Tests for the error taxonomy and retry/timeout helpers."""

from __future__ import annotations

import asyncio

import pytest

from src.errors import (
    DimensionMismatchError,
    NonRetryableProviderError,
    OperationTimeoutError,
    TransientProviderError,
    is_retryable,
)
from src.resilience import RetryPolicy, with_retry, with_timeout

FAST = RetryPolicy(retries=2, min_wait=0, max_wait=0, jitter=0)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class TestIsRetryable:
    def test_taxonomy_types(self) -> None:
        assert is_retryable(TransientProviderError("boom"))
        assert is_retryable(OperationTimeoutError("slow"))
        assert not is_retryable(NonRetryableProviderError("nope"))
        assert not is_retryable(DimensionMismatchError("bad dims"))
        assert not is_retryable(ValueError("invalid"))

    def test_status_codes(self) -> None:
        assert is_retryable(_StatusError(503))
        assert is_retryable(_StatusError(429))
        assert not is_retryable(_StatusError(401))
        assert not is_retryable(_StatusError(404))

    def test_messages(self) -> None:
        assert not is_retryable(RuntimeError("Video unavailable"))
        assert not is_retryable(RuntimeError("Invalid API key provided"))
        assert is_retryable(ConnectionError("connection reset by peer"))


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self) -> None:
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise TransientProviderError("try again")
            return "ok"

        assert await with_retry(flaky, FAST, "flaky") == "ok"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_with_original_error(self) -> None:
        calls = 0

        async def always_fails() -> None:
            nonlocal calls
            calls += 1
            raise TransientProviderError("still down")

        with pytest.raises(TransientProviderError, match="still down"):
            await with_retry(always_fails, FAST, "down")
        assert calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_fails_fast(self) -> None:
        calls = 0

        async def rejected() -> None:
            nonlocal calls
            calls += 1
            raise NonRetryableProviderError("unauthorized")

        with pytest.raises(NonRetryableProviderError):
            await with_retry(rejected, FAST, "auth")
        assert calls == 1


class TestWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        async def quick() -> int:
            return 7

        assert await with_timeout(quick, 1.0, "quick") == 7

    @pytest.mark.asyncio
    async def test_raises_timeout_error(self) -> None:
        async def slow() -> None:
            await asyncio.sleep(1)

        with pytest.raises(OperationTimeoutError, match="slow-call"):
            await with_timeout(slow, 0.01, "slow-call")

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self) -> None:
        calls = 0

        async def slow_once() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "done"

        result = await with_retry(lambda: with_timeout(slow_once, 0.05, "slow"), FAST, "slow")
        assert result == "done"
        assert calls == 2
