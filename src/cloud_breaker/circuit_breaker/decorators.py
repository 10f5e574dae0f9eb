"""Decorator boundary deriving breaker keys from call sites."""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from cloud_breaker.circuit_breaker.engine import CircuitBreakerEngine

T = TypeVar("T")
P = ParamSpec("P")

KEY_SEPARATOR = ":"


def breaker_key(namespace: str, operation: str) -> str:
    """Return the shared breaker key ``<namespace>:<operation>``.

    The namespace keeps logically distinct deployments apart when they share
    one store.
    """
    normalized_namespace = namespace.strip()
    normalized_operation = operation.strip()
    if not normalized_namespace:
        raise ValueError("namespace must be non-empty")
    if not normalized_operation:
        raise ValueError("operation must be non-empty")
    return f"{normalized_namespace}{KEY_SEPARATOR}{normalized_operation}"


def protect(
    engine: CircuitBreakerEngine,
    *,
    namespace: str,
    operation: str | None = None,
    fallback: Callable[P, Awaitable[T]] | Callable[P, T] | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Wrap an async function with circuit breaker protection.

    Args:
        engine: Engine running the protected calls.
        namespace: Deployment namespace, usually the service name.
        operation: Operation name. Defaults to the function's ``__name__``.
        fallback: Callable served while the circuit is open. It receives the
            same arguments as the protected function.

    Raises:
        ValueError: At decoration time, when the namespace or operation is
            empty.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        key = breaker_key(namespace, operation or func.__name__)

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await engine.execute(key, func, *args, fallback=fallback, **kwargs)

        wrapper.breaker_key = key  # type: ignore[attr-defined]
        return wrapper

    return decorator
