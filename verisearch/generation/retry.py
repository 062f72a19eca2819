"""
Retry Policy
=============

Retry-with-backoff for calls across the generation boundary, applied at
the call site (LLM judge, OpenAI backend) and independent of any
search or consensus logic.

Generators return GenerationError values instead of raising, so the
policy retries on *results*: a transient GenerationError is retried
with exponential backoff until the attempt budget is spent, at which
point the last error value is returned to the caller unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from verisearch.errors import GenerationError, InvalidConfiguration

logger = logging.getLogger("verisearch.generation.retry")


def _is_transient_failure(outcome: Any) -> bool:
    return isinstance(outcome, GenerationError) and outcome.transient


def _last_outcome(retry_state) -> Any:
    return retry_state.outcome.result()


class RetryPolicy:
    """
    Bounded exponential backoff.

    Delay before attempt ``k + 1`` is ``backoff_base_s * 2 ** (k - 1)``,
    capped at ``backoff_max_s``.

    Usage:
        policy = RetryPolicy(max_attempts=3, backoff_base_s=1.0)
        outcome = await policy.call(generator.generate, context, params)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base_s: float = 1.0,
        backoff_max_s: float = 30.0,
    ):
        if max_attempts < 1:
            raise InvalidConfiguration(f"max_attempts must be >= 1, got {max_attempts}")
        if backoff_base_s < 0 or backoff_max_s < 0:
            raise InvalidConfiguration("backoff delays must be non-negative")
        self.max_attempts = max_attempts
        self.backoff_base_s = backoff_base_s
        self.backoff_max_s = backoff_max_s

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        """Build from a GenerationConfig."""
        return cls(
            max_attempts=config.max_retries,
            backoff_base_s=config.backoff_base_s,
            backoff_max_s=config.backoff_max_s,
        )

    async def call(self, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``fn(*args, **kwargs)``, retrying transient GenerationErrors."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base_s, max=self.backoff_max_s),
            retry=retry_if_result(_is_transient_failure),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            retry_error_callback=_last_outcome,
            reraise=True,
        )
        return await retrying(fn, *args, **kwargs)
