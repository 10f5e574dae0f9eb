"""Open/closed decision policy over a shared breaker store."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from cloud_breaker.circuit_breaker.state import CircuitRecord, CircuitStatus
from cloud_breaker.circuit_breaker.storage import AbstractBreakerStore
from cloud_breaker.logging import AnyLogger, get_logger, log_info


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker policy values.

    Both values are required; a missing policy must fail at construction
    rather than fall back to a default that hides misconfiguration.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        reset_timeout_seconds: Seconds after the last failure before an open
            circuit admits a trial call.
    """

    failure_threshold: int
    reset_timeout_seconds: int

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout_seconds < 1:
            raise ValueError("reset_timeout_seconds must be >= 1")


class CircuitBreakerManager:
    """Translate stored breaker state into allow/deny decisions.

    The manager holds no state of its own: every decision is a fresh store
    read, so any number of instances can share one store.
    """

    def __init__(
        self,
        store: AbstractBreakerStore,
        config: CircuitBreakerConfig,
        *,
        logger: AnyLogger | None = None,
    ) -> None:
        self._store = store
        self.config = config
        self._logger = get_logger(__name__) if logger is None else logger

    @property
    def store(self) -> AbstractBreakerStore:
        return self._store

    async def is_open(self, key: str) -> bool:
        """Return whether calls for ``key`` should be short-circuited.

        An ``OPEN`` record whose cool-down has elapsed answers ``False`` so
        the caller may attempt a trial call. The stored status is left as is;
        only the trial's recorded outcome changes it.
        """
        record = await self._store.get_state(key)
        if record is None or record.status == CircuitStatus.CLOSED:
            return False
        cooldown_ends = record.last_failure_time + timedelta(
            seconds=self.config.reset_timeout_seconds
        )
        return not _utcnow() > cooldown_ends

    async def record_success(self, key: str) -> None:
        """Close the breaker and zero its failure count."""
        await self._store.reset(key)

    async def record_failure(self, key: str) -> CircuitRecord:
        """Count one failure for ``key`` and persist the resulting record.

        Returns:
            The record submitted to the store. When the write lost an
            optimistic-write conflict the stored record is a fresher one from
            another caller and this return value is stale; no transition is
            logged in that case.
        """
        now = _utcnow()
        stored = await self._store.get_state(key)
        # Absent keys start from a closed record so the threshold also
        # applies to the first failure; a threshold of 1 opens at once.
        base = CircuitRecord.closed(key, now) if stored is None else stored
        record = base.with_failure(now, failure_threshold=self.config.failure_threshold)

        applied = await self._store.save_state(key, record)
        if applied and record.is_open and (stored is None or not stored.is_open):
            log_info(
                self._logger,
                "circuit_breaker.opened",
                key=key,
                failure_count=record.failure_count,
                reset_timeout_seconds=self.config.reset_timeout_seconds,
            )
        return record

    async def get_state(self, key: str) -> CircuitRecord:
        """Return the stored record, or a fresh ``CLOSED`` one if absent."""
        record = await self._store.get_state(key)
        if record is None:
            return CircuitRecord.closed(key, _utcnow())
        return record

    async def reset(self, key: str) -> None:
        """Explicitly close breaker ``key``."""
        await self._store.reset(key)
        log_info(self._logger, "circuit_breaker.reset", key=key)
