"""Retry with exponential backoff for LLM client calls.

Only :class:`~agentloop.core.errors.LLMTransportError` and its
subclasses are retried; everything else is treated as permanent.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from agentloop.core.errors import LLMRateLimitError, LLMTransportError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Backoff settings. ``max_retries`` counts attempts after the first."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = True


def is_retryable(error: BaseException) -> bool:
    """Whether the error is a transient transport failure."""
    return isinstance(error, LLMTransportError)


def _compute_delay(attempt: int, config: RetryConfig, error: Exception) -> float:
    """Seconds to wait before retry number ``attempt + 1``."""
    if isinstance(error, LLMRateLimitError) and error.retry_after is not None:
        return min(error.retry_after, config.max_delay)

    delay = min(config.base_delay * 2**attempt, config.max_delay)
    if config.jitter:
        # +/-50%
        delay *= random.uniform(0.5, 1.5)
    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Await ``fn()`` until it succeeds or the retry budget is spent.

    Args:
        fn: Zero-arg callable returning a fresh awaitable per attempt.
        config: Backoff settings. Uses defaults if None.
        on_retry: Called as ``on_retry(retry_number, delay, error)``
            before each sleep.

    Raises:
        The last transport error once retries are exhausted, or any
        non-retryable error immediately.
    """
    cfg = config or RetryConfig()
    retries = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or retries >= cfg.max_retries:
                raise
            delay = _compute_delay(retries, cfg, e)
            retries += 1
            if on_retry is not None:
                on_retry(retries, delay, e)
            await asyncio.sleep(delay)
