"""
DynamoDB-backed session store adapter.

Implements SessionStorePort using boto3 for the CoachingSessions table.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from adapters.in_memory_session_store import apply_query
from ports.session_store import SessionStorePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import PersistenceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)

_PK = "collection"
_SK = "record_id"


def to_dynamo_value(value: Any) -> Any:
    """DynamoDB rejects floats; round-trip through JSON with Decimal floats."""
    return json.loads(json.dumps(value, default=str), parse_float=Decimal)


def from_dynamo_value(value: Any) -> Any:
    """Convert Decimals back to int/float, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo_value(v) for v in value]
    return value


class DynamoSessionStoreAdapter:
    """Amazon DynamoDB implementation of SessionStorePort.

    Table key: ``collection`` (partition key) + ``record_id`` (sort key).
    """

    def __init__(
        self,
        table_name: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
    ) -> None:
        self._table_name = table_name
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._table = self._dynamo.Table(table_name)

    # ------------------------------------------------------------------
    # SessionStorePort implementation
    # ------------------------------------------------------------------

    async def create(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._put, collection, record_id, record)

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._update, collection, record_id, fields)

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, collection, record_id)

    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        items = await asyncio.to_thread(self._query, collection, where)
        # Ordering is on arbitrary attributes, so it happens client-side
        return apply_query(items, None, order_by, descending, limit)

    # ------------------------------------------------------------------
    # Blocking boto3 calls
    # ------------------------------------------------------------------

    def _put(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        item = {**to_dynamo_value(record), _PK: collection, _SK: record_id}
        try:
            self._table.put_item(Item=item)
            logger.debug("dynamo_put_record", collection=collection, record_id=record_id)
        except ClientError as exc:
            logger.error(
                "dynamo_put_record_failed",
                collection=collection,
                record_id=record_id,
                error=str(exc),
            )
            raise PersistenceError(
                f"Failed to put record: {exc}", collection=collection, record_id=record_id
            ) from exc

    def _update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        assignments = []
        for i, (name, value) in enumerate(fields.items()):
            names[f"#f{i}"] = name
            values[f":v{i}"] = to_dynamo_value(value)
            assignments.append(f"#f{i} = :v{i}")

        try:
            self._table.update_item(
                Key={_PK: collection, _SK: record_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression=Attr(_SK).exists(),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
            logger.debug("dynamo_update_record", collection=collection, record_id=record_id)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            message = "Record not found" if code == "ConditionalCheckFailedException" else f"Failed to update record: {exc}"
            logger.error(
                "dynamo_update_record_failed",
                collection=collection,
                record_id=record_id,
                error=str(exc),
            )
            raise PersistenceError(message, collection=collection, record_id=record_id) from exc

    def _get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._table.get_item(Key={_PK: collection, _SK: record_id})
        except ClientError as exc:
            logger.error(
                "dynamo_get_record_failed",
                collection=collection,
                record_id=record_id,
                error=str(exc),
            )
            raise PersistenceError(
                f"Failed to get record: {exc}", collection=collection, record_id=record_id
            ) from exc
        item = response.get("Item")
        return self._strip_keys(item) if item is not None else None

    def _query(self, collection: str, where: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        query_kwargs: Dict[str, Any] = {"KeyConditionExpression": Key(_PK).eq(collection)}

        filter_expr = None
        for name, value in (where or {}).items():
            condition = Attr(name).eq(to_dynamo_value(value))
            filter_expr = condition if filter_expr is None else filter_expr & condition
        if filter_expr is not None:
            query_kwargs["FilterExpression"] = filter_expr

        items: List[Dict[str, Any]] = []
        try:
            # Handle pagination
            while True:
                response = self._table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if last_key is None:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        except ClientError as exc:
            logger.error("dynamo_query_records_failed", collection=collection, error=str(exc))
            raise PersistenceError(f"Failed to query records: {exc}", collection=collection) from exc

        logger.debug("dynamo_query_records", collection=collection, results=len(items))
        return [self._strip_keys(item) for item in items]

    @staticmethod
    def _strip_keys(item: Dict[str, Any]) -> Dict[str, Any]:
        return {k: from_dynamo_value(v) for k, v in item.items() if k not in (_PK, _SK)}
