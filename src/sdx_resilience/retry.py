"""Async retry engine with capped exponential backoff and jitter.

The engine drives ``tenacity.AsyncRetrying``. The attempt budget, the
caller's retry condition and the cancellation signal are folded into
tenacity's ``retry``/``before``/``sleep`` hooks so that the original
operation error is always re-raised verbatim.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar, cast

from tenacity import AsyncRetrying, RetryCallState
from tenacity.wait import wait_base

from sdx_resilience.errors import RetryCancelledError, TransientError
from sdx_resilience.helpers import describe_callable
from sdx_resilience.logging import LoggerLike, log_exception, log_warning

T = TypeVar("T")

RetryCondition = Callable[[Exception, int], bool | Awaitable[bool]]
RetryObserver = Callable[[Exception, int, float], Awaitable[None] | None]
SleepFn = Callable[[float], Awaitable[None]]

_logger = logging.getLogger(__name__)


class CancellationSignal(Protocol):
    """Caller-owned cancellation signal. ``asyncio.Event`` satisfies it."""

    def is_set(self) -> bool:
        """Return whether cancellation has been requested."""

    async def wait(self) -> object:
        """Block until cancellation is requested."""


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for one retry sequence.

    Attributes:
        max_retries: Retries after the first attempt. Total attempts are
            ``max_retries + 1``.
        initial_delay: Delay in seconds after the first failed attempt.
        max_delay: Upper bound in seconds for any computed delay.
        backoff_factor: Multiplier applied per failed attempt.
        jitter: Scale each delay by a random factor in ``[0.5, 1.0)``.
        retry_condition: Predicate ``(error, attempt)`` deciding whether a
            failure is retried. May return an awaitable. ``None`` retries
            every failure.
        on_retry: Observer ``(error, attempt, delay)`` called before each
            delay. May return an awaitable.
        cancellation: Signal checked before each attempt and during delays.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True
    retry_condition: RetryCondition | None = None
    on_retry: RetryObserver | None = None
    cancellation: CancellationSignal | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")


def calculate_delay(
    attempt: int,
    policy: RetryPolicy,
    *,
    random_fn: Callable[[], float] = random.random,
) -> float:
    """Return the delay in seconds to wait after failed attempt ``attempt``.

    The delay is ``min(initial_delay * backoff_factor ** (attempt - 1),
    max_delay)``. With jitter enabled it is scaled by ``0.5 + random_fn() / 2``
    which keeps it within ``[0.5 * capped, capped)``.

    Args:
        attempt: 1-indexed number of the attempt that just failed.
        policy: Backoff configuration.
        random_fn: Source of uniform floats in ``[0.0, 1.0)``.

    Raises:
        ValueError: If ``attempt`` is lower than 1.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")

    try:
        exponential = policy.initial_delay * policy.backoff_factor ** (attempt - 1)
    except OverflowError:
        exponential = policy.max_delay
    capped = min(exponential, policy.max_delay)

    if not policy.jitter:
        return capped
    return capped * (0.5 + random_fn() * 0.5)


class wait_capped_exponential_jitter(wait_base):
    """Tenacity wait strategy backed by :func:`calculate_delay`."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        random_fn: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self.random_fn = random_fn

    def __call__(self, retry_state: RetryCallState) -> float:
        return calculate_delay(
            retry_state.attempt_number,
            self.policy,
            random_fn=self.random_fn,
        )


def build_cancellable_sleep(cancellation: CancellationSignal | None) -> SleepFn:
    """Build an async sleep that aborts promptly when cancellation fires."""

    async def _cancellable_sleep(delay: float) -> None:
        bounded_delay = max(delay, 0.0)
        if cancellation is None:
            await asyncio.sleep(bounded_delay)
            return

        if cancellation.is_set():
            raise RetryCancelledError()

        try:
            await asyncio.wait_for(cancellation.wait(), timeout=bounded_delay)
        except TimeoutError:
            return
        raise RetryCancelledError()

    return _cancellable_sleep


def retry_on_exception_types(*exception_types: type[Exception]) -> RetryCondition:
    """Build a retry condition accepting only ``exception_types``.

    Defaults to :class:`~sdx_resilience.errors.TransientError` when no type is
    given.
    """
    accepted = exception_types or (TransientError,)

    def _condition(error: Exception, attempt: int) -> bool:
        del attempt
        return isinstance(error, accepted)

    return _condition


def build_retrying(
    policy: RetryPolicy,
    *,
    sleep: SleepFn | None = None,
    logger: LoggerLike | None = None,
    operation_name: str = "operation",
    random_fn: Callable[[], float] = random.random,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that applies ``policy``.

    Args:
        policy: Retry configuration.
        sleep: Replacement for the cancellable sleep. The cancellation signal
            is still checked before every attempt.
        logger: Logger for retry events. Defaults to this module's logger.
        operation_name: Name reported in log events.
        random_fn: Jitter source forwarded to :func:`calculate_delay`.
    """
    active_logger = _logger if logger is None else logger
    cancellation = policy.cancellation

    def _check_cancelled(retry_state: RetryCallState) -> None:
        if cancellation is not None and cancellation.is_set():
            raise RetryCancelledError(retry_state.attempt_number)

    async def _should_retry(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False

        error = outcome.exception()
        # Task cancellation and interpreter exits are never retried.
        if not isinstance(error, Exception):
            return False

        attempt = retry_state.attempt_number
        if attempt > policy.max_retries:
            return False
        if policy.retry_condition is None:
            return True

        decision = policy.retry_condition(error, attempt)
        if inspect.isawaitable(decision):
            decision = await decision
        return bool(decision)

    async def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        next_action = retry_state.next_action
        if outcome is None or next_action is None:
            return

        error = cast(Exception, outcome.exception())
        attempt = retry_state.attempt_number
        delay = next_action.sleep
        log_warning(
            active_logger,
            "retry.scheduled",
            operation=operation_name,
            attempt=attempt,
            delay=delay,
            error=repr(error),
        )

        if policy.on_retry is None:
            return
        try:
            notified = policy.on_retry(error, attempt, delay)
            if inspect.isawaitable(notified):
                await notified
        except Exception:
            log_exception(
                active_logger,
                "retry.on_retry_failed",
                operation=operation_name,
                attempt=attempt,
            )

    return AsyncRetrying(
        retry=_should_retry,
        wait=wait_capped_exponential_jitter(policy, random_fn=random_fn),
        before=_check_cancelled,
        before_sleep=_before_sleep,
        sleep=build_cancellable_sleep(cancellation) if sleep is None else sleep,
        reraise=True,
    )


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: SleepFn | None = None,
    logger: LoggerLike | None = None,
) -> T:
    """Invoke ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument async callable. It must be safe to call more
            than once.
        policy: Retry configuration. Defaults to ``RetryPolicy()``.
        sleep: Replacement for the cancellable delay, mainly for tests.
        logger: Logger for retry events.

    Returns:
        The first successful result of ``operation``.

    Raises:
        RetryCancelledError: When the cancellation signal is set before an
            attempt or fires during a delay.
        Exception: The last error raised by ``operation`` once the attempt
            budget is spent or the retry condition declines.
    """
    active_policy = RetryPolicy() if policy is None else policy
    retrying = build_retrying(
        active_policy,
        sleep=sleep,
        logger=logger,
        operation_name=describe_callable(operation),
    )
    return await retrying(operation)
