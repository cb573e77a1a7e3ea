"""Exponential backoff for model requests.

Only transient transport failures are retried: rate limits, timeouts and
overloaded backends. Anything else reaches the caller on the first
attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from quill.core.errors import (
    OverloadedError,
    RateLimitError,
    TransportTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from quill.config.schema import ModelConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    RateLimitError,
    TransportTimeoutError,
    OverloadedError,
)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """How often to retry a transient failure and how long to wait."""

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    @classmethod
    def from_model_config(cls, config: ModelConfig) -> RetryConfig:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    def delay_for(self, attempt: int, error: Exception) -> float:
        """Seconds to sleep after failed attempt number ``attempt`` (0-based).

        A rate limit's ``retry_after`` hint replaces the exponential
        schedule. Both are capped at ``max_delay``; jitter scales the
        computed delay by 0.5 to 1.5 and never touches a server hint.
        """
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(error.retry_after, self.max_delay)
        delay = min(self.base_delay * 2**attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


def is_retryable(error: BaseException) -> bool:
    """Authentication failures, unknown models and bad requests are final."""
    return isinstance(error, TRANSIENT_ERRORS)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
) -> T:
    """Await ``fn()`` until it succeeds or fails for good.

    ``on_retry(attempt, delay, error)`` runs before each sleep, with
    attempts counted from 1; without it the retry is logged at DEBUG.
    Once ``max_retries`` retries are spent the last transient error
    propagates unchanged.
    """
    cfg = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= cfg.max_retries:
                raise
            delay = cfg.delay_for(attempt, exc)
            attempt += 1
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            else:
                logger.debug(
                    "Transient failure (%s); retry %d in %.2fs", exc, attempt, delay
                )
            await asyncio.sleep(delay)
