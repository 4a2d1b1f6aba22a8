"""
Unit tests for the SessionStorePort adapters.

In-memory and JSON stores run for real (JSON under tmp_path); DynamoDB uses a
mocked boto3 resource; no live AWS calls.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from adapters.dynamo_session_store import DynamoSessionStoreAdapter, from_dynamo_value, to_dynamo_value
from adapters.in_memory_session_store import InMemorySessionStoreAdapter, apply_query
from adapters.json_session_store import JsonSessionStoreAdapter
from ports.session_store import SessionStorePort
from shared_utils.error_handler import PersistenceError


# ======================================================================
# apply_query
# ======================================================================

class TestApplyQuery:
    RECORDS = [
        {"id": "a", "user_id": "u1", "created_at_ms": 3},
        {"id": "b", "user_id": "u2", "created_at_ms": 1},
        {"id": "c", "user_id": "u1"},
        {"id": "d", "user_id": "u1", "created_at_ms": 2},
    ]

    def test_filter_sort_desc(self) -> None:
        result = apply_query(self.RECORDS, where={"user_id": "u1"}, order_by="created_at_ms", descending=True)
        assert [r["id"] for r in result] == ["a", "d", "c"]

    def test_missing_field_sorts_last_ascending(self) -> None:
        result = apply_query(self.RECORDS, order_by="created_at_ms")
        assert [r["id"] for r in result] == ["b", "d", "a", "c"]

    def test_limit(self) -> None:
        assert len(apply_query(self.RECORDS, limit=2)) == 2


# ======================================================================
# InMemorySessionStoreAdapter
# ======================================================================

class TestInMemorySessionStore:
    def test_satisfies_port(self) -> None:
        assert isinstance(InMemorySessionStoreAdapter(), SessionStorePort)

    async def test_create_get_update(self) -> None:
        store = InMemorySessionStoreAdapter()
        await store.create("sessions", "s-1", {"title": "Sync", "duration_ms": 0})
        await store.update("sessions", "s-1", {"duration_ms": 125000})
        assert await store.get("sessions", "s-1") == {"title": "Sync", "duration_ms": 125000}

    async def test_create_is_idempotent(self) -> None:
        store = InMemorySessionStoreAdapter()
        await store.create("sessions", "s-1", {"title": "Sync"})
        await store.create("sessions", "s-1", {"title": "Sync"})
        assert store.count("sessions") == 1

    async def test_update_missing_raises(self) -> None:
        store = InMemorySessionStoreAdapter()
        with pytest.raises(PersistenceError, match="Record not found"):
            await store.update("sessions", "nope", {"x": 1})

    async def test_returned_records_are_copies(self) -> None:
        store = InMemorySessionStoreAdapter()
        record = {"topics": ["a"]}
        await store.create("analytics", "r", record)
        record["topics"].append("mutated")
        fetched = await store.get("analytics", "r")
        fetched["topics"].append("again")
        assert (await store.get("analytics", "r")) == {"topics": ["a"]}

    async def test_get_missing(self) -> None:
        assert await InMemorySessionStoreAdapter().get("sessions", "nope") is None


# ======================================================================
# JsonSessionStoreAdapter
# ======================================================================

class TestJsonSessionStore:
    async def test_persists_across_instances(self, tmp_path) -> None:
        path = str(tmp_path / "nested" / "store.json")
        await JsonSessionStoreAdapter(path).create("sessions", "s-1", {"user_id": "u1", "created_at_ms": 5})
        reopened = JsonSessionStoreAdapter(path)
        assert await reopened.get("sessions", "s-1") == {"user_id": "u1", "created_at_ms": 5}
        assert await reopened.list("sessions", where={"user_id": "u1"}) == [{"user_id": "u1", "created_at_ms": 5}]

    async def test_update_missing_raises(self, tmp_path) -> None:
        store = JsonSessionStoreAdapter(str(tmp_path / "store.json"))
        with pytest.raises(PersistenceError):
            await store.update("sessions", "nope", {"status": "completed"})

    async def test_corrupt_file_reads_empty(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json")
        assert await JsonSessionStoreAdapter(str(path)).list("sessions") == []


# ======================================================================
# DynamoSessionStoreAdapter
# ======================================================================

def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, "Operation")


class TestDynamoValueConversion:
    def test_floats_become_decimal(self) -> None:
        assert to_dynamo_value({"ratio": 0.25, "items": [1.5]}) == {"ratio": Decimal("0.25"), "items": [Decimal("1.5")]}

    def test_decimals_come_back(self) -> None:
        assert from_dynamo_value({"n": Decimal("3"), "f": Decimal("0.5"), "l": [Decimal("2")]}) == {"n": 3, "f": 0.5, "l": [2]}


class TestDynamoSessionStore:
    @pytest.fixture()
    def table(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def adapter(self, table: MagicMock) -> DynamoSessionStoreAdapter:
        resource = MagicMock()
        resource.Table.return_value = table
        return DynamoSessionStoreAdapter(table_name="TestTable", dynamodb_resource=resource)

    async def test_create_puts_keyed_item(self, adapter, table: MagicMock) -> None:
        await adapter.create("session_analytics", "analytics_s-1", {"sentiment_score": 0.5})
        item = table.put_item.call_args[1]["Item"]
        assert item["collection"] == "session_analytics"
        assert item["record_id"] == "analytics_s-1"
        assert item["sentiment_score"] == Decimal("0.5")

    async def test_create_client_error(self, adapter, table: MagicMock) -> None:
        table.put_item.side_effect = _client_error("ProvisionedThroughputExceededException")
        with pytest.raises(PersistenceError) as exc_info:
            await adapter.create("sessions", "s-1", {})
        assert exc_info.value.context == {"collection": "sessions", "record_id": "s-1"}

    async def test_update_builds_conditional_set(self, adapter, table: MagicMock) -> None:
        await adapter.update("sessions", "s-1", {"status": "completed", "duration_ms": 125000})
        kwargs = table.update_item.call_args[1]
        assert kwargs["Key"] == {"collection": "sessions", "record_id": "s-1"}
        assert kwargs["UpdateExpression"] == "SET #f0 = :v0, #f1 = :v1"
        assert kwargs["ExpressionAttributeNames"] == {"#f0": "status", "#f1": "duration_ms"}
        assert "ConditionExpression" in kwargs

    async def test_update_missing_record(self, adapter, table: MagicMock) -> None:
        table.update_item.side_effect = _client_error("ConditionalCheckFailedException")
        with pytest.raises(PersistenceError, match="Record not found"):
            await adapter.update("sessions", "nope", {"status": "completed"})

    async def test_get_strips_keys(self, adapter, table: MagicMock) -> None:
        table.get_item.return_value = {
            "Item": {"collection": "sessions", "record_id": "s-1", "duration_ms": Decimal("125000")}
        }
        assert await adapter.get("sessions", "s-1") == {"duration_ms": 125000}

    async def test_get_missing(self, adapter, table: MagicMock) -> None:
        table.get_item.return_value = {}
        assert await adapter.get("sessions", "s-1") is None

    async def test_list_paginates_and_sorts(self, adapter, table: MagicMock) -> None:
        table.query.side_effect = [
            {"Items": [{"collection": "sessions", "record_id": "a", "created_at_ms": Decimal("1")}],
             "LastEvaluatedKey": {"record_id": "a"}},
            {"Items": [{"collection": "sessions", "record_id": "b", "created_at_ms": Decimal("2")}]},
        ]
        result = await adapter.list("sessions", where={"user_id": "u1"}, order_by="created_at_ms", descending=True)
        assert result == [{"created_at_ms": 2}, {"created_at_ms": 1}]
        assert table.query.call_count == 2
        assert table.query.call_args_list[1][1]["ExclusiveStartKey"] == {"record_id": "a"}
        assert "FilterExpression" in table.query.call_args_list[0][1]
