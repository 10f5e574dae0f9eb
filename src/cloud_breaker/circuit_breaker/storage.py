"""State storage for circuit breakers.

Storage is the single source of truth for breaker state; the manager keeps
nothing between calls. Durable backends (DynamoDB, Redis) implement the same
interface so every service instance sharing a table coordinates through it.

Writes are optimistic: a record is accepted only when nothing is stored for
the key yet or the stored ``last_failure_time`` is not newer than the incoming
one. A rejected write is not an error. It is logged and reported as ``False``
on the assumption that the concurrent writer's state is at least as fresh.
"""

import asyncio
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from cloud_breaker.circuit_breaker.state import CircuitRecord
from cloud_breaker.logging import AnyLogger, get_logger, log_warning


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AbstractBreakerStore(ABC):
    """Abstract breaker store interface."""

    def __init__(self, *, logger: AnyLogger | None = None) -> None:
        self._logger = get_logger(__name__) if logger is None else logger

    @abstractmethod
    async def get_state(self, key: str) -> CircuitRecord | None:
        """Return the stored record for ``key`` or ``None`` if never written."""

    @abstractmethod
    async def save_state(self, key: str, record: CircuitRecord) -> bool:
        """Persist ``record`` unless a fresher failure is already stored.

        Returns:
            ``True`` when the write was applied, ``False`` on a conflict.

        Raises:
            StoreError: When the backend fails for any other reason.
        """

    async def reset(self, key: str) -> bool:
        """Reset breaker ``key`` to a healthy ``CLOSED`` record stamped now."""
        return await self.save_state(key, CircuitRecord.closed(key, _utcnow()))

    def _log_conflict(
        self,
        key: str,
        record: CircuitRecord,
        stored_last_failure: object,
    ) -> None:
        log_warning(
            self._logger,
            "circuit_breaker.save_conflict",
            key=key,
            status=str(record.status),
            failure_count=record.failure_count,
            last_failure_time=record.last_failure_time.isoformat(),
            stored_last_failure_time=str(stored_last_failure),
        )


class InMemoryBreakerStore(AbstractBreakerStore):
    """In-memory store with per-key cooperative + optional thread locks."""

    def __init__(self, *, logger: AnyLogger | None = None) -> None:
        """Initialize in-memory record and lock registries."""
        super().__init__(logger=logger)
        self._records: dict[str, CircuitRecord] = {}
        self._async_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        async_lock = self._async_locks[key]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[key]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except Exception:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    async def get_state(self, key: str) -> CircuitRecord | None:
        """Return the stored record without creating one."""
        async with self._locked(key):
            return self._records.get(key)

    async def save_state(self, key: str, record: CircuitRecord) -> bool:
        """Compare-and-set ``record`` on its failure timestamp."""
        async with self._locked(key):
            stored = self._records.get(key)
            if stored is not None and stored.last_failure_time > record.last_failure_time:
                self._log_conflict(key, record, stored.last_failure_time.isoformat())
                return False
            self._records[key] = record
            return True
