"""Observability hooks for circuit breakers."""

from typing import Protocol


class BreakerListener(Protocol):
    """Listener protocol for execution events.

    Notes:
        Status transitions are not reported here because the engine only sees
        its own writes; other fleet members change the same record.
    """

    async def on_call_rejected(self, key: str) -> None:
        """Handle a call rejected while the circuit is open."""

    async def on_fallback_used(self, key: str) -> None:
        """Handle a fallback served in place of the protected call."""

    async def on_call_succeeded(self, key: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(
        self, key: str, exc: BaseException, elapsed: float
    ) -> None:
        """Handle failed protected call completion."""
