"""Core circuit breaker implementation."""

import logging
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import ParamSpec, TypeVar

from sdx_resilience.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitHalfOpenLimitError,
    CircuitOpenError,
)
from sdx_resilience.circuit_breaker.metrics import BreakerListener
from sdx_resilience.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitState,
    next_state,
)
from sdx_resilience.logging import LoggerLike, log_exception, log_info, log_warning

T = TypeVar("T")
P = ParamSpec("P")

_Transition = tuple[CircuitState, CircuitState]

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        reset_timeout: Seconds after the last failure before ``OPEN`` admits
            half-open probes.
        half_open_max: Probe calls admitted per half-open window.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
    """

    failure_threshold: int = 5
    reset_timeout: float = 30.0
    half_open_max: int = 3
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")
        if self.half_open_max < 1:
            raise ValueError("half_open_max must be >= 1")


@dataclass(slots=True)
class _Admission:
    """Outcome of one admission decision taken under the state lock."""

    transition: _Transition | None = None
    rejection: CircuitBreakerError | None = None
    probe_window: int | None = None


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation.

    All state lives on the instance and every read-modify-write happens under
    one lock that is never held across an ``await``. Half-open probes are
    counted per window and the count is only reset when the breaker enters
    ``HALF_OPEN`` or ``CLOSED``.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: LoggerLike | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used in errors, logs and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
            clock: Timezone-aware wall clock. Defaults to UTC now.
            logger: Logger for breaker events. Defaults to this module's logger.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._clock = _utcnow if clock is None else clock
        self._logger = _logger if logger is None else logger
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: datetime | None = None
        self._half_open_in_flight = 0
        self._half_open_window = 0

    @property
    def state(self) -> CircuitState:
        """Current state, including an elapsed ``OPEN`` -> ``HALF_OPEN`` move."""
        with self._lock:
            return self._resolve_state(self._clock())

    def snapshot(self) -> BreakerSnapshot:
        """Return a consistent point-in-time view of the breaker."""
        with self._lock:
            state = self._resolve_state(self._clock())
            in_flight = self._half_open_in_flight if state == self._state else 0
            return BreakerSnapshot(
                name=self.name,
                state=state,
                failure_count=self._failure_count,
                last_failure_at=self._last_failure_at,
                half_open_in_flight=in_flight,
            )

    def reset(self) -> None:
        """Force the breaker ``CLOSED`` with no failures and no probes."""
        with self._lock:
            previous = self._state
            self._failure_count = 0
            self._last_failure_at = None
            self._enter(CircuitState.CLOSED)
        log_info(
            self._logger,
            "circuit_breaker.reset",
            breaker=self.name,
            previous_state=str(previous),
        )

    async def execute(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when admitted and successful.

        Raises:
            CircuitOpenError: When the circuit is open.
            CircuitHalfOpenLimitError: When the half-open probe quota is used.
            Exception: The original exception from ``func`` when it is
                attempted and fails.
        """
        admission = self._admit()
        if admission.transition is not None:
            await self._emit_state_change(*admission.transition)

        if admission.rejection is not None:
            log_info(
                self._logger,
                "circuit_breaker.rejected",
                breaker=self.name,
                reason=str(admission.rejection),
            )
            await self._emit_call_rejected()
            raise admission.rejection

        settled = False
        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            settled = True
            elapsed = max(time.monotonic() - start, 0.0)
            transition = self._record_failure()
            await self._emit_call_failed(exc, elapsed)
            if transition is not None:
                await self._emit_state_change(*transition)
            raise
        else:
            settled = True
            elapsed = max(time.monotonic() - start, 0.0)
            transition = self._record_success()
            if transition is not None:
                await self._emit_state_change(*transition)
            await self._emit_call_succeeded(elapsed)
            return result
        finally:
            # Outcomes that are neither success nor failure hand the probe
            # slot back to the window that admitted them.
            if not settled and admission.probe_window is not None:
                self._release_probe(admission.probe_window)

    def _resolve_state(self, now: datetime) -> CircuitState:
        return next_state(
            self._state,
            last_failure_at=self._last_failure_at,
            now=now,
            reset_timeout=self.config.reset_timeout,
        )

    def _enter(self, state: CircuitState) -> None:
        self._state = state
        if state != CircuitState.OPEN:
            self._half_open_in_flight = 0
        if state == CircuitState.HALF_OPEN:
            self._half_open_window += 1

    def _retry_after(self, now: datetime) -> float:
        if self._last_failure_at is None:
            return 0.0
        elapsed = (now - self._last_failure_at).total_seconds()
        return max(self.config.reset_timeout - elapsed, 0.0)

    def _admit(self) -> _Admission:
        admission = _Admission()
        with self._lock:
            now = self._clock()
            resolved = self._resolve_state(now)
            if resolved != self._state:
                admission.transition = (self._state, resolved)
                self._enter(resolved)

            if self._state == CircuitState.OPEN:
                admission.rejection = CircuitOpenError(
                    self.name, retry_after=self._retry_after(now)
                )
            elif self._state == CircuitState.HALF_OPEN:
                if self._half_open_in_flight >= self.config.half_open_max:
                    admission.rejection = CircuitHalfOpenLimitError(
                        self.name, self.config.half_open_max
                    )
                else:
                    self._half_open_in_flight += 1
                    admission.probe_window = self._half_open_window
        return admission

    def _record_success(self) -> _Transition | None:
        with self._lock:
            previous = self._state
            self._failure_count = 0
            self._enter(CircuitState.CLOSED)
        if previous == CircuitState.CLOSED:
            return None
        return (previous, CircuitState.CLOSED)

    def _record_failure(self) -> _Transition | None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_at = self._clock()
            if self._state == CircuitState.OPEN:
                return None
            if self._failure_count < self.config.failure_threshold:
                return None
            previous = self._state
            self._enter(CircuitState.OPEN)
        return (previous, CircuitState.OPEN)

    def _release_probe(self, window: int) -> None:
        with self._lock:
            if (
                self._state == CircuitState.HALF_OPEN
                and self._half_open_window == window
                and self._half_open_in_flight > 0
            ):
                self._half_open_in_flight -= 1

    def _log_state_change(self, old: CircuitState, new: CircuitState) -> None:
        if new == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker.opened",
                breaker=self.name,
                previous_state=str(old),
                failure_count=self._failure_count,
            )
            return
        event = (
            "circuit_breaker.half_open"
            if new == CircuitState.HALF_OPEN
            else "circuit_breaker.closed"
        )
        log_info(self._logger, event, breaker=self.name, previous_state=str(old))

    async def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        self._log_state_change(old, new)
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook="on_state_change",
                )

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook="on_call_rejected",
                )

    async def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook="on_call_succeeded",
                )

    async def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook="on_call_failed",
                )
