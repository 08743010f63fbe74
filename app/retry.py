"""Bounded retries around transient backend calls.

Store adapters wrap each backend round trip in ``call_with_retry`` so that a
single dropped connection does not surface as a user-visible failure. Retries
are bounded by BACKEND_RETRY_ATTEMPTS (total attempts, not re-tries) with
exponential backoff and jitter; once exhausted the last error is re-raised
unchanged so the adapter can translate it.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from app.config import Settings

__all__ = ["RetryPolicy", "call_with_retry"]

T = TypeVar("T")

logger = logging.getLogger("pastebin")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 0.05
    max_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.BACKEND_RETRY_ATTEMPTS,
            initial_delay=settings.BACKEND_RETRY_INITIAL_DELAY_SECONDS,
            max_delay=settings.BACKEND_RETRY_MAX_DELAY_SECONDS,
        )


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    is_retryable: Callable[[BaseException], bool] = lambda exc: True,
    op: str = "backend call",
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt budget and backoff bounds.
        is_retryable: Predicate deciding whether an error is worth another try.
        op: Operation name used in log messages.

    Returns:
        The operation's result.

    Raises:
        Exception: The last error raised by ``operation``.
    """

    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(f"{op} failed (attempt {retry_state.attempt_number}/{policy.max_attempts}): {exc}")

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential_jitter(initial=policy.initial_delay, max=policy.max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            result = await operation()
    return result
