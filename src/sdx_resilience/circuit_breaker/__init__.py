"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - State is private to each ``CircuitBreaker`` instance and lives in memory
    for the lifetime of that instance.
  - ``OPEN`` becomes ``HALF_OPEN`` lazily: the first admission decision after
    ``reset_timeout`` seconds observes the move. There is no timer.
  - Up to ``half_open_max`` probes are admitted per half-open window. A probe
    slot is not returned when a probe finishes; the window ends with the
    first probe outcome, which closes or reopens the circuit.
  - If an excluded exception is raised during a call, the call is treated as
    if it never happened: no counters change and a probe slot is returned.
"""

from sdx_resilience.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
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

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitHalfOpenLimitError",
    "CircuitOpenError",
    "CircuitState",
    "next_state",
]
