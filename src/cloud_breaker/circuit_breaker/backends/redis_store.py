from __future__ import annotations

from redis.asyncio import Redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError, WatchError
from tenacity import AsyncRetrying, RetryCallState
from tenacity.retry import retry_if_exception_type

from cloud_breaker.circuit_breaker.exceptions import StoreError
from cloud_breaker.circuit_breaker.state import (
    FAILURE_COUNT_FIELD,
    LAST_FAILURE_TIME_FIELD,
    STATUS_FIELD,
    CircuitRecord,
    record_from_fields,
    record_to_fields,
)
from cloud_breaker.circuit_breaker.storage import AbstractBreakerStore
from cloud_breaker.logging import AnyLogger, log_warning
from cloud_breaker.retry import (
    DEFAULT_STORE_RETRY_POLICY,
    RetryBackoffPolicy,
    build_exponential_jitter_retrying,
)

DEFAULT_KEY_PREFIX = "circuit_breaker:"
DEFAULT_MAX_WATCH_ATTEMPTS = 16


def _text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisBreakerStore(AbstractBreakerStore):
    """Breaker store backed by one Redis hash per breaker key.

    Hash fields mirror the DynamoDB item: ``status``, ``failureCount`` and
    ``lastFailureTime`` (epoch seconds). Conditional writes use
    ``WATCH``/``MULTI``; when another client touches the hash between the
    freshness check and ``EXEC`` the check is re-run against the new value,
    up to ``max_watch_attempts`` times.
    Connection errors and timeouts are retried with exponential jitter.
    """

    def __init__(
        self,
        *,
        client: Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        retry_policy: RetryBackoffPolicy = DEFAULT_STORE_RETRY_POLICY,
        max_watch_attempts: int = DEFAULT_MAX_WATCH_ATTEMPTS,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a store over a connected ``redis.asyncio.Redis`` client.

        Args:
            client: Redis client; ``decode_responses`` may be either value.
            key_prefix: Prefix prepended to every breaker key.
            retry_policy: Backoff policy for transient connection failures.
            max_watch_attempts: Optimistic transaction attempts before a
                contended write gives up with ``StoreError``.
            logger: Logger override, mainly for tests.
        """
        super().__init__(logger=logger)
        self._client = client
        self._key_prefix = key_prefix
        self._retry_policy = retry_policy
        if max_watch_attempts < 1:
            raise ValueError("max_watch_attempts must be >= 1")
        self._max_watch_attempts = max_watch_attempts

    def _name(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _retrying(self, key: str, operation: str) -> AsyncRetrying:
        def _before_sleep(state: RetryCallState) -> None:
            outcome = state.outcome
            error = None if outcome is None else outcome.exception()
            log_warning(
                self._logger,
                "circuit_breaker.store_retry",
                key=key,
                operation=operation,
                attempt=state.attempt_number,
                error=repr(error),
            )

        return build_exponential_jitter_retrying(
            retry=retry_if_exception_type((ConnectionError, TimeoutError)),
            policy=self._retry_policy,
            before_sleep=_before_sleep,
        )

    async def get_state(self, key: str) -> CircuitRecord | None:
        """Read the hash for ``key``."""
        try:
            async for attempt in self._retrying(key, "get_state"):
                with attempt:
                    raw = await self._client.hgetall(self._name(key))
        except RedisError as exc:
            raise StoreError(key, "get_state", str(exc)) from exc

        if not raw:
            return None
        fields = {_text(name): _text(value) for name, value in raw.items()}
        try:
            return record_from_fields(
                key,
                status=fields[STATUS_FIELD],
                failure_count=fields[FAILURE_COUNT_FIELD],
                last_failure_time=fields[LAST_FAILURE_TIME_FIELD],
            )
        except (KeyError, ValueError) as exc:
            raise StoreError(key, "get_state", f"malformed hash: {exc!r}") from exc

    async def save_state(self, key: str, record: CircuitRecord) -> bool:
        """Write ``record`` unless the stored failure time is newer."""
        try:
            async for attempt in self._retrying(key, "save_state"):
                with attempt:
                    stored = await self._compare_and_set(key, record)
        except RedisError as exc:
            raise StoreError(key, "save_state", str(exc)) from exc
        except ValueError as exc:
            raise StoreError(key, "save_state", f"malformed hash: {exc!r}") from exc

        if stored is not None:
            self._log_conflict(key, record, stored)
            return False
        return True

    async def _compare_and_set(self, key: str, record: CircuitRecord) -> str | None:
        """Apply the conditional write.

        Returns:
            ``None`` when the write landed, otherwise the stored failure time
            that won the conflict.
        """
        name = self._name(key)
        fields = record_to_fields(record)
        incoming = int(fields[LAST_FAILURE_TIME_FIELD])
        async with self._client.pipeline(transaction=True) as pipe:
            for _ in range(self._max_watch_attempts):
                try:
                    await pipe.watch(name)
                    stored = await pipe.hget(name, LAST_FAILURE_TIME_FIELD)
                    if stored is not None and int(stored) > incoming:
                        await pipe.unwatch()
                        return _text(stored)
                    pipe.multi()
                    pipe.hset(name, mapping=fields)
                    await pipe.execute()
                    return None
                except WatchError:
                    continue
        raise StoreError(
            key,
            "save_state",
            f"write contended for {self._max_watch_attempts} attempts",
        )
