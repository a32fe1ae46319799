"""Shared error types for sdx_resilience."""


class ResilienceError(Exception):
    """Base exception for errors raised by the resilience primitives."""


class RetryCancelledError(ResilienceError):
    """Raised when a retry sequence is cancelled by its cancellation signal.

    Cancellation is observed before an attempt starts or while waiting out
    the delay between attempts. It is never raised for the operation's own
    failures.
    """

    def __init__(self, attempt: int | None = None) -> None:
        """Initialize a cancellation payload.

        Args:
            attempt: Attempt number that would have run next, if known.
        """
        self.attempt = attempt
        if attempt is None:
            super().__init__("retry_cancelled")
        else:
            super().__init__(f"retry_cancelled: before attempt {attempt}")


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""
