"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open (``CircuitOpenError``).
  - The shared state store failing (``StoreError``).
  - The protected operation failing, which is re-raised unchanged.
"""

from __future__ import annotations


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Also raised when the circuit is open and the supplied fallback fails; the
    fallback exception is then available as ``fallback_error`` and as the
    exception cause.

    Attributes:
        key: Breaker key rejecting the call.
        metadata: Structured context for logs and error responses.
        fallback_error: Exception raised by the fallback, if one ran.
    """

    def __init__(self, key: str, fallback_error: BaseException | None = None) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            key: Breaker key rejecting the call.
            fallback_error: Exception raised by the fallback, if any.
        """
        self.key = key
        self.fallback_error = fallback_error
        self.metadata: dict[str, str] = {"key": key}
        message = f"circuit_open: {key}"
        if fallback_error is not None:
            message = (
                f"{message} fallback_failed={fallback_error.__class__.__name__}"
            )
        super().__init__(message)


class StoreError(CircuitBreakerError):
    """Raised when the backing store fails for a reason other than a conflict.

    Attributes:
        key: Breaker key being read or written.
        operation: Store operation that failed (``get_state``/``save_state``).
    """

    def __init__(self, key: str, operation: str, message: str) -> None:
        self.key = key
        self.operation = operation
        super().__init__(f"store_{operation}_failed: {key}: {message}")
