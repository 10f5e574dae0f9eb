"""Execution wrapper applying breaker decisions around a unit of work."""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar, Union, cast

from cloud_breaker.circuit_breaker.exceptions import CircuitOpenError, StoreError
from cloud_breaker.circuit_breaker.manager import CircuitBreakerManager
from cloud_breaker.circuit_breaker.metrics import BreakerListener
from cloud_breaker.logging import AnyLogger, get_logger, log_exception, log_warning

T = TypeVar("T")

Work = Union[Callable[..., Awaitable[T]], Callable[..., T]]


async def _resolve(result: object) -> Any:
    if inspect.isawaitable(result):
        return await cast(Awaitable[object], result)
    return result


class CircuitBreakerEngine:
    """Run protected calls through a shared ``CircuitBreakerManager``."""

    def __init__(
        self,
        manager: CircuitBreakerManager,
        *,
        listeners: Sequence[BreakerListener] | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Build an engine over ``manager``.

        Args:
            manager: Policy object consulted and updated on every call.
            listeners: Optional listener hooks for execution events.
            logger: Logger override, mainly for tests.
        """
        self.manager = manager
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = get_logger(__name__) if logger is None else logger

    async def _emit(self, hook: str, key: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                await getattr(listener, hook)(key, *args)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    key=key,
                    hook=hook,
                )

    async def _record_outcome(
        self, key: str, record: Callable[[str], Awaitable[object]]
    ) -> None:
        # The caller's own result or exception outranks a failed store write.
        try:
            await record(key)
        except StoreError:
            log_exception(self._logger, "circuit_breaker.record_failed", key=key)

    async def execute(
        self,
        key: str,
        func: Work[T],
        /,
        *args: Any,
        fallback: Work[T] | None = None,
        **kwargs: Any,
    ) -> T:
        """Invoke ``func`` under circuit breaker protection.

        Args:
            key: Namespaced breaker key, ``<namespace>:<operation>``.
            func: Protected callable. Sync and async callables are accepted.
            *args: Positional arguments forwarded to ``func`` or ``fallback``.
            fallback: Optional callable served instead of ``func`` while the
                circuit is open. It receives the same arguments.
            **kwargs: Keyword arguments forwarded to ``func`` or ``fallback``.

        Returns:
            The result of ``func``, or of ``fallback`` when the circuit is open.

        Raises:
            CircuitOpenError: When the circuit is open and there is no
                fallback, or the fallback itself fails.
            StoreError: When the shared store cannot be read. A failed write
                of the call's outcome is logged instead, so the caller still
                gets the result or the original exception.
            Exception: The original exception from ``func`` when it is
                attempted and fails.
        """
        if await self.manager.is_open(key):
            return await self._short_circuit(key, fallback, args, kwargs)

        start = time.monotonic()
        try:
            result = await _resolve(func(*args, **kwargs))
        except (Exception, asyncio.CancelledError) as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            await self._record_outcome(key, self.manager.record_failure)
            await self._emit("on_call_failed", key, exc, elapsed)
            raise
        elapsed = max(time.monotonic() - start, 0.0)
        await self._record_outcome(key, self.manager.record_success)
        await self._emit("on_call_succeeded", key, elapsed)
        return cast(T, result)

    async def _short_circuit(
        self,
        key: str,
        fallback: Work[T] | None,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> T:
        if fallback is None:
            log_warning(self._logger, "circuit_breaker.rejected", key=key)
            await self._emit("on_call_rejected", key)
            raise CircuitOpenError(key)

        try:
            result = await _resolve(fallback(*args, **kwargs))
        except Exception as exc:
            log_warning(
                self._logger,
                "circuit_breaker.fallback_failed",
                key=key,
                error=f"{exc.__class__.__name__}: {exc}",
            )
            raise CircuitOpenError(key, fallback_error=exc) from exc
        await self._emit("on_fallback_used", key)
        return cast(T, result)
