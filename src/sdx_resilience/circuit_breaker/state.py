"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Resolved breaker state at snapshot time.
        failure_count: Consecutive failures since the last success or reset.
        last_failure_at: Timestamp of the most recent failure, if any.
        half_open_in_flight: Probes admitted in the current half-open window.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_at: datetime | None
    half_open_in_flight: int


def next_state(
    state: CircuitState,
    *,
    last_failure_at: datetime | None,
    now: datetime,
    reset_timeout: float,
) -> CircuitState:
    """Return the state an admission decision at ``now`` should observe.

    Only ``OPEN`` moves on its own: once ``reset_timeout`` seconds have passed
    since the last failure it becomes ``HALF_OPEN``.
    """
    if state != CircuitState.OPEN or last_failure_at is None:
        return state
    elapsed = (now - last_failure_at).total_seconds()
    if elapsed >= reset_timeout:
        return CircuitState.HALF_OPEN
    return state
