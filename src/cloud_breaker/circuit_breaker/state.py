"""Circuit breaker state primitives."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum


class CircuitStatus(StrEnum):
    """Persisted circuit breaker status values.

    Values match the shared store schema so records written by any fleet
    member stay readable by the others.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"


@dataclass(frozen=True)
class CircuitRecord:
    """Immutable snapshot of one breaker's persisted state.

    Attributes:
        key: Namespaced breaker key, for example ``"orders:charge_card"``.
        status: Persisted breaker status.
        failure_count: Consecutive failures since the last reset.
        last_failure_time: Time of the most recent recorded failure, or of the
            reset that produced this record.
    """

    key: str
    status: CircuitStatus
    failure_count: int
    last_failure_time: datetime

    def __post_init__(self) -> None:
        if self.failure_count < 0:
            raise ValueError("failure_count must be >= 0")

    @classmethod
    def closed(cls, key: str, at: datetime) -> CircuitRecord:
        """Build a healthy record stamped with ``at``."""
        return cls(
            key=key,
            status=CircuitStatus.CLOSED,
            failure_count=0,
            last_failure_time=at,
        )

    @property
    def is_open(self) -> bool:
        return self.status == CircuitStatus.OPEN

    def with_failure(self, at: datetime, *, failure_threshold: int) -> CircuitRecord:
        """Return the record that results from one more failure at ``at``."""
        failure_count = self.failure_count + 1
        status = self.status
        if failure_count >= failure_threshold:
            status = CircuitStatus.OPEN
        return replace(
            self,
            status=status,
            failure_count=failure_count,
            last_failure_time=at,
        )


STATUS_FIELD = "status"
FAILURE_COUNT_FIELD = "failureCount"
LAST_FAILURE_TIME_FIELD = "lastFailureTime"


def to_epoch_seconds(value: datetime) -> int:
    """Truncate ``value`` to whole epoch seconds, the durable stores' precision."""
    return int(value.timestamp())


def from_epoch_seconds(value: int) -> datetime:
    return datetime.fromtimestamp(value, UTC)


def record_to_fields(record: CircuitRecord) -> dict[str, str]:
    """Encode ``record`` as the string fields shared by durable backends."""
    return {
        STATUS_FIELD: str(record.status),
        FAILURE_COUNT_FIELD: str(record.failure_count),
        LAST_FAILURE_TIME_FIELD: str(to_epoch_seconds(record.last_failure_time)),
    }


def record_from_fields(
    key: str,
    *,
    status: str,
    failure_count: str | int,
    last_failure_time: str | int,
) -> CircuitRecord:
    """Decode durable backend fields into a record.

    Raises:
        ValueError: When a field is malformed.
    """
    return CircuitRecord(
        key=key,
        status=CircuitStatus(status),
        failure_count=int(failure_count),
        last_failure_time=from_epoch_seconds(int(last_failure_time)),
    )
