"""Bounded retry with exponential backoff.

Delay before attempt k+1 is ``min(base_delay * backoff_factor ** (k - 1), max_delay)``.
Backoff sleeps with ``asyncio.sleep``, so a retrying workflow never pauses
the rest of the process.

Example:
    >>> from stockwatch.execution.retry import RetryExecutor, RetryPolicy
    >>>
    >>> executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=2.0, max_delay=10.0))
    >>> result = await executor.execute(fetch_page)   # 2s, then 4s between attempts
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from stockwatch.core.errors import (
    ErrorCategory,
    ErrorContext,
    FailureRecord,
    FailureRecorder,
    RetryExhaustedError,
)
from stockwatch.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay in seconds after the first failure
        max_delay: Cap on any single delay
        backoff_factor: Multiplier applied per failed attempt
        category: Category stamped on failure records
        context: Label stamped on failure records (e.g. ``"probe"``)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    category: ErrorCategory = ErrorCategory.APPLICATION
    context: str = "unknown"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)

    def with_overrides(self, **kwargs: Any) -> RetryPolicy:
        return replace(self, **kwargs)


class RetryExecutor:
    """Runs an async operation up to ``max_attempts`` times.

    Every failed attempt produces a ``FailureRecord`` for ``on_failure``.
    When the last attempt fails, ``RetryExhaustedError`` is raised with the
    attempt count and the last underlying error.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        on_failure: FailureRecorder | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._on_failure = on_failure
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
    ) -> T:
        """Execute ``operation`` with retry.

        Args:
            operation: Zero-argument coroutine function
            policy: Per-call override of the executor's policy

        Returns:
            The first successful result

        Raises:
            RetryExhaustedError: All attempts failed
        """
        policy = policy or self.policy
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await operation()
            except Exception as e:
                final = attempt >= policy.max_attempts
                delay = None if final else policy.delay_for(attempt)
                self._record(policy, e, attempt, delay, final)

                if final:
                    raise RetryExhaustedError(
                        attempt,
                        e,
                        category=policy.category,
                        context=ErrorContext(operation=policy.context, attempt=attempt),
                    ) from e

                logger.warning(
                    "retry_attempt_failed",
                    context=policy.context,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    next_delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            if attempt > 1:
                logger.info(
                    "retry_succeeded",
                    context=policy.context,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                )
            return result

    def _record(
        self,
        policy: RetryPolicy,
        error: Exception,
        attempt: int,
        delay: float | None,
        final: bool,
    ) -> None:
        if self._on_failure is None:
            return
        suffix = f"final attempt {attempt}" if final else f"attempt {attempt}"
        self._on_failure(
            FailureRecord.from_exception(
                error,
                category=policy.category,
                context=f"{policy.context} - {suffix}",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                next_delay=delay,
                final=final,
            )
        )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    on_failure: FailureRecorder | None = None,
    **policy_kwargs: Any,
) -> T:
    """One-off retry without keeping an executor around.

    Example:
        >>> page = await retry_async(fetch_page, max_attempts=3, base_delay=2.0, context="probe")
    """
    executor = RetryExecutor(RetryPolicy(**policy_kwargs), on_failure=on_failure)
    return await executor.execute(operation)
