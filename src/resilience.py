"""Retry and timeout wrappers for external calls.

Every collaborator (embedding provider, vector store, video source) goes
through the same two higher-order helpers, parameterised by a per-service
policy instead of ad-hoc loops at each call site.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from src.errors import OperationTimeoutError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with jitter.

    ``retries`` counts attempts after the first, so ``retries=3`` means at
    most four calls.
    """

    retries: int = 3
    min_wait: float = 1.0
    max_wait: float = 5.0
    factor: float = 2.0
    jitter: float = 1.0


RETRY_POLICIES: dict[str, RetryPolicy] = {
    "youtube": RetryPolicy(retries=3, min_wait=2.0, max_wait=10.0),
    "vector_store": RetryPolicy(retries=2, min_wait=1.0, max_wait=5.0),
    "openai": RetryPolicy(retries=3, min_wait=1.0, max_wait=8.0),
    "api": RetryPolicy(retries=2, min_wait=1.0, max_wait=5.0),
}

# Seconds per single external call.
TIMEOUTS: dict[str, float] = {
    "youtube": 30.0,
    "vector_store": 15.0,
    "openai": 20.0,
    "database": 10.0,
    "api": 15.0,
    "default": 10.0,
}


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    seconds: float,
    context: str = "unknown-operation",
) -> T:
    """Await *operation* and raise :class:`OperationTimeoutError` after *seconds*."""
    try:
        return await asyncio.wait_for(operation(), timeout=seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("Operation timed out: %s after %.1fs", context, seconds)
        raise OperationTimeoutError(
            f"Operation timed out after {seconds:.0f}s: {context}"
        ) from exc


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    context: str = "unknown-operation",
) -> T:
    """Run *operation* with bounded retries on transient errors.

    Non-retryable errors (see :func:`src.errors.is_retryable`) propagate on
    the first attempt. After the last attempt the original exception is
    re-raised, not a ``RetryError``.
    """
    policy = policy or RetryPolicy()

    def _log_failed_attempt(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Attempt %d/%d failed for %s: %s",
            state.attempt_number,
            policy.retries + 1,
            context,
            exc,
        )

    async for attempt in AsyncRetrying(
        retry=retry_if_exception(is_retryable),
        stop=stop_after_attempt(policy.retries + 1),
        wait=wait_exponential_jitter(
            initial=policy.min_wait,
            max=policy.max_wait,
            exp_base=policy.factor,
            jitter=policy.jitter,
        ),
        before_sleep=_log_failed_attempt,
        reraise=True,
    ):
        with attempt:
            result = await operation()
            if attempt.retry_state.attempt_number > 1:
                logger.info(
                    "%s succeeded after %d attempts",
                    context,
                    attempt.retry_state.attempt_number,
                )
            return result

    raise AssertionError("unreachable")  # pragma: no cover


async def call_external(
    operation: Callable[[], Awaitable[T]],
    service: str,
    context: str,
) -> T:
    """Retry + per-attempt timeout using the named service's policy."""
    timeout = TIMEOUTS.get(service, TIMEOUTS["default"])
    return await with_retry(
        lambda: with_timeout(operation, timeout, context),
        RETRY_POLICIES.get(service),
        context,
    )
