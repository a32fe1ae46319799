"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A call being rejected because the half-open probe quota is used up.
"""

from sdx_resilience.errors import ResilienceError


class CircuitBreakerError(ResilienceError):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a half-open probe may be attempted.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"circuit_open: {breaker_name} retry_after={retry_after:g}s")


class CircuitHalfOpenLimitError(CircuitBreakerError):
    """Raised when a half-open breaker has no probe slots left.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        half_open_max: Probe quota of the current half-open window.
    """

    def __init__(self, breaker_name: str, half_open_max: int) -> None:
        self.breaker_name = breaker_name
        self.half_open_max = half_open_max
        super().__init__(
            f"circuit_half_open_limit: {breaker_name} half_open_max={half_open_max}"
        )
