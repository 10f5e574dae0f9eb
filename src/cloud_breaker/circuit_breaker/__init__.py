"""Distributed async circuit breaker.

Breaker state lives in a shared store so every service instance sees the
same circuit for a key and the whole fleet fails fast together.

Key behavior notes:
  - Storage persists only ``CLOSED`` and ``OPEN``. An open circuit whose
    cool-down has elapsed answers "not open" to let a trial call through, but
    its stored status stays ``OPEN`` until the trial's outcome is recorded.
  - Trial calls are not rationed: concurrent callers in the same cool-down
    window may all be admitted.
  - Writes are optimistic on the last failure timestamp. A write that loses to
    a fresher concurrent failure is dropped and logged, so failure counts are
    approximate under concurrency.
"""

from cloud_breaker.circuit_breaker.decorators import breaker_key, protect
from cloud_breaker.circuit_breaker.engine import CircuitBreakerEngine
from cloud_breaker.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    StoreError,
)
from cloud_breaker.circuit_breaker.manager import (
    CircuitBreakerConfig,
    CircuitBreakerManager,
)
from cloud_breaker.circuit_breaker.metrics import BreakerListener
from cloud_breaker.circuit_breaker.state import CircuitRecord, CircuitStatus
from cloud_breaker.circuit_breaker.storage import (
    AbstractBreakerStore,
    InMemoryBreakerStore,
)

__all__ = [
    "AbstractBreakerStore",
    "BreakerListener",
    "CircuitBreakerConfig",
    "CircuitBreakerEngine",
    "CircuitBreakerError",
    "CircuitBreakerManager",
    "CircuitOpenError",
    "CircuitRecord",
    "CircuitStatus",
    "InMemoryBreakerStore",
    "StoreError",
    "breaker_key",
    "protect",
]
