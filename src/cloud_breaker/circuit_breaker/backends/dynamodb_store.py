from __future__ import annotations

import asyncio
from collections.abc import Mapping
from concurrent.futures import Executor
from functools import partial
from typing import Any, Protocol

from botocore.exceptions import BotoCoreError, ClientError

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
from cloud_breaker.logging import AnyLogger

KEY_ATTRIBUTE = "id"
CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"

_UPDATE_EXPRESSION = (
    f"SET #status = :status, {FAILURE_COUNT_FIELD} = :failureCount, "
    f"{LAST_FAILURE_TIME_FIELD} = :lastFailureTime"
)
_CONDITION_EXPRESSION = (
    f"attribute_not_exists({KEY_ATTRIBUTE}) "
    f"OR {LAST_FAILURE_TIME_FIELD} <= :lastFailureTime"
)


class _DynamoDBClientLike(Protocol):
    """Subset of the boto3 DynamoDB client used by the store."""

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        """Read one item."""

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]:
        """Conditionally write one item."""


class DynamoDBBreakerStore(AbstractBreakerStore):
    """Breaker store backed by one DynamoDB table.

    Items are keyed by ``id`` (string) and carry ``status`` (S),
    ``failureCount`` (N) and ``lastFailureTime`` (N, epoch seconds). The
    failure timestamp doubles as the optimistic-concurrency token, so no
    version attribute is needed.

    The boto3 client is blocking; calls run on ``executor`` (the loop's
    default executor when ``None``). Retries follow the client's botocore
    retry configuration.
    """

    def __init__(
        self,
        *,
        client: _DynamoDBClientLike,
        table_name: str,
        executor: Executor | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a store over an existing table.

        Args:
            client: boto3 DynamoDB client, for example
                ``boto3.client("dynamodb")``.
            table_name: Table holding breaker records.
            executor: Executor for blocking client calls.
            logger: Logger override, mainly for tests.
        """
        if not table_name.strip():
            raise ValueError("table_name must be non-empty")
        super().__init__(logger=logger)
        self._client = client
        self._table_name = table_name
        self._executor = executor

    async def _call(self, method: str, request: dict[str, Any]) -> Mapping[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(getattr(self._client, method), **request),
        )

    def _key(self, key: str) -> dict[str, dict[str, str]]:
        return {KEY_ATTRIBUTE: {"S": key}}

    async def get_state(self, key: str) -> CircuitRecord | None:
        """Read the record with a strongly consistent read."""
        try:
            response = await self._call(
                "get_item",
                {
                    "TableName": self._table_name,
                    "Key": self._key(key),
                    "ConsistentRead": True,
                },
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(key, "get_state", str(exc)) from exc

        item = response.get("Item")
        if not item:
            return None
        try:
            return record_from_fields(
                key,
                status=item[STATUS_FIELD]["S"],
                failure_count=item[FAILURE_COUNT_FIELD]["N"],
                last_failure_time=item[LAST_FAILURE_TIME_FIELD]["N"],
            )
        except (KeyError, ValueError) as exc:
            raise StoreError(key, "get_state", f"malformed item: {exc!r}") from exc

    async def save_state(self, key: str, record: CircuitRecord) -> bool:
        """Write ``record`` unless the stored failure time is newer."""
        fields = record_to_fields(record)
        request = {
            "TableName": self._table_name,
            "Key": self._key(key),
            "UpdateExpression": _UPDATE_EXPRESSION,
            "ConditionExpression": _CONDITION_EXPRESSION,
            "ExpressionAttributeNames": {"#status": STATUS_FIELD},
            "ExpressionAttributeValues": {
                ":status": {"S": fields[STATUS_FIELD]},
                ":failureCount": {"N": fields[FAILURE_COUNT_FIELD]},
                ":lastFailureTime": {"N": fields[LAST_FAILURE_TIME_FIELD]},
            },
            "ReturnValuesOnConditionCheckFailure": "ALL_OLD",
        }
        try:
            await self._call("update_item", request)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            if error.get("Code") != CONDITIONAL_CHECK_FAILED:
                raise StoreError(key, "save_state", str(exc)) from exc
            stored = exc.response.get("Item", {}).get(LAST_FAILURE_TIME_FIELD, {})
            self._log_conflict(key, record, stored.get("N"))
            return False
        except BotoCoreError as exc:
            raise StoreError(key, "save_state", str(exc)) from exc
        return True
