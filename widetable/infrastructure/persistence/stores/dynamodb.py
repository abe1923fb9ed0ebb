"""DynamoDB implementation of RecordStore.

Uses the low-level boto3 client.  boto3 is synchronous, so every call runs
in a worker thread to keep the event loop free.  Query descriptors already
speak DynamoDB's expression language and are passed through as-is.
"""

from __future__ import annotations

import asyncio
import logging
import re
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from widetable.domain.exceptions import (
    BadKeyError,
    ConditionFailedError,
    StoreError,
    StoreRejectedError,
    StoreUnavailableError,
)
from widetable.domain.models.query import QueryDescriptor
from widetable.domain.repositories.store import Page, Record, RecordStore, WriteCondition
from widetable.infrastructure.database import Settings

logger = logging.getLogger(__name__)

_RETRYABLE_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "LimitExceededException",
        "InternalServerError",
        "ServiceUnavailable",
    }
)
_NAME_TOKEN = re.compile(r"#\w+")


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _number(value: Any) -> Any:
    # TypeSerializer only accepts Decimal for non-integral numbers.
    if isinstance(value, float):
        return Decimal(str(value))
    return value


class DynamoDbRecordStore(RecordStore):
    name = "dynamodb"

    def __init__(
        self,
        client: Any | None = None,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
        max_attempts: int = 3,
    ) -> None:
        if client is None:
            config = Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": max_attempts, "mode": "standard"},
            )
            client = boto3.client(
                "dynamodb", region_name=region_name, endpoint_url=endpoint_url, config=config
            )
        self._client: Any = client
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @classmethod
    def from_settings(cls, settings: Settings) -> DynamoDbRecordStore:
        return cls(
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
            connect_timeout=settings.dynamodb_connect_timeout,
            read_timeout=settings.dynamodb_read_timeout,
            max_attempts=settings.dynamodb_max_attempts,
        )

    # -- (de)serialization ---------------------------------------------- #

    def _to_item(self, record: Record) -> dict[str, Any]:
        return {
            k: self._serializer.serialize(_number(v)) for k, v in record.items() if v is not None
        }

    def _from_item(self, item: dict[str, Any] | None) -> Record | None:
        if item is None:
            return None
        return {k: _plain(self._deserializer.deserialize(v)) for k, v in item.items()}

    # -- transport ------------------------------------------------------- #

    async def _call(self, operation: str, **request: Any) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(getattr(self._client, operation), **request)
        except ClientError as err:
            raise self._map_client_error(err, request) from err
        except (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError) as err:
            raise StoreUnavailableError(self.name, str(err)) from err
        except BotoCoreError as err:
            raise StoreRejectedError(self.name, str(err)) from err

    def _map_client_error(self, err: ClientError, request: dict[str, Any]) -> StoreError:
        code = err.response.get("Error", {}).get("Code", "")
        message = err.response.get("Error", {}).get("Message")
        if code == "ConditionalCheckFailedException":
            item = self._from_item(request.get("Item")) or {}
            return ConditionFailedError(
                request.get("TableName", ""),
                item.get("PK", ""),
                item.get("SK", ""),
                request.get("ConditionExpression", ""),
            )
        if code in _RETRYABLE_CODES:
            logger.warning("DynamoDB throttled or unavailable: %s", code)
            return StoreUnavailableError(self.name, code)
        return StoreRejectedError(self.name, f"{code}: {message}" if message else code)

    # -- RecordStore ----------------------------------------------------- #

    async def get_item(self, table: str, pk: str, sk: str) -> Record | None:
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        response = await self._call(
            "get_item",
            TableName=table,
            Key=self._to_item({"PK": pk, "SK": sk}),
            ConsistentRead=True,
        )
        return self._from_item(response.get("Item"))

    async def put_item(
        self, table: str, record: Record, condition: WriteCondition | None = None
    ) -> None:
        if not record.get("PK") or not record.get("SK"):
            raise BadKeyError(record.get("PK"), record.get("SK"))
        request: dict[str, Any] = {"TableName": table, "Item": self._to_item(record)}
        if condition is not None:
            request["ConditionExpression"] = condition.expression
            if condition.values:
                request["ExpressionAttributeValues"] = self._to_item(condition.values)
        await self._call("put_item", **request)

    async def delete_item(self, table: str, pk: str, sk: str) -> None:
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        await self._call("delete_item", TableName=table, Key=self._to_item({"PK": pk, "SK": sk}))

    async def query(
        self,
        query: QueryDescriptor,
        exclusive_start_key: Record | None = None,
        limit: int | None = None,
    ) -> Page:
        request: dict[str, Any] = {
            "TableName": query.table,
            "KeyConditionExpression": query.key_condition_expression,
            "ExpressionAttributeValues": self._to_item(query.expression_attribute_values),
        }
        expressions = " ".join(
            e
            for e in (
                query.key_condition_expression,
                query.projection_expression,
                query.filter_expression,
            )
            if e
        )
        # DynamoDB rejects names that no expression references.
        used = set(_NAME_TOKEN.findall(expressions))
        names = {k: v for k, v in query.expression_attribute_names.items() if k in used}
        if names:
            request["ExpressionAttributeNames"] = names
        if query.index_name:
            request["IndexName"] = query.index_name
        if query.projection_expression:
            request["ProjectionExpression"] = query.projection_expression
        if query.filter_expression:
            request["FilterExpression"] = query.filter_expression
        if exclusive_start_key:
            request["ExclusiveStartKey"] = self._to_item(exclusive_start_key)
        if limit:
            request["Limit"] = limit

        response = await self._call("query", **request)
        items = [self._from_item(item) or {} for item in response.get("Items", [])]
        return Page(items=items, last_evaluated_key=self._from_item(response.get("LastEvaluatedKey")))
