"""Compose a circuit breaker around a retrying call."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

from sdx_resilience.circuit_breaker import (
    BreakerListener,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from sdx_resilience.helpers import describe_callable
from sdx_resilience.logging import LoggerLike
from sdx_resilience.retry import RetryPolicy, retry

T = TypeVar("T")


class ResilientCall(Generic[T]):
    """Callable applying a private breaker around a full retry sequence.

    The breaker records one outcome per call, after the retries of that call
    have succeeded or run out.
    """

    def __init__(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        breaker: CircuitBreaker,
        retry_policy: RetryPolicy,
        logger: LoggerLike | None = None,
    ) -> None:
        self.operation = operation
        self.breaker = breaker
        self.retry_policy = retry_policy
        self._logger = logger

    async def _retrying(self) -> T:
        return await retry(self.operation, self.retry_policy, logger=self._logger)

    async def __call__(self) -> T:
        return await self.breaker.execute(self._retrying)


def make_resilient(
    operation: Callable[[], Awaitable[T]],
    retry_policy: RetryPolicy | None = None,
    breaker_config: CircuitBreakerConfig | None = None,
    *,
    name: str | None = None,
    listeners: Sequence[BreakerListener] | None = None,
    logger: LoggerLike | None = None,
) -> ResilientCall[T]:
    """Wrap ``operation`` with retries inside a dedicated circuit breaker.

    Args:
        operation: Zero-argument async callable to protect.
        retry_policy: Retry configuration. Defaults to ``RetryPolicy()``.
        breaker_config: Breaker configuration. Defaults to
            ``CircuitBreakerConfig()``.
        name: Breaker name. Defaults to the operation's qualified name.
        listeners: Listener hooks for the breaker.
        logger: Logger shared by the breaker and the retry engine.
    """
    breaker = CircuitBreaker(
        describe_callable(operation) if name is None else name,
        config=breaker_config,
        listeners=listeners,
        logger=logger,
    )
    return ResilientCall(
        operation,
        breaker=breaker,
        retry_policy=RetryPolicy() if retry_policy is None else retry_policy,
        logger=logger,
    )
