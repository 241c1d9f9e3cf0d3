import pytest

from dynamo_archive.core.models import (
    Batch,
    CapacitySnapshot,
    SchemaDocument,
)
from dynamo_archive.tests.helpers.fakes import make_items, table_description


def test_batch_rejects_empty_items() -> None:
    with pytest.raises(ValueError):
        Batch(items=[])


def test_batch_retry_keeps_lineage_and_counts_attempts() -> None:
    items = make_items(5)
    batch = Batch(items=items)

    retry = batch.retry(items[3:])

    assert retry.attempts == 1
    assert retry.retry_of is batch
    assert retry.items == items[3:]
    assert batch.retry().items == items


def test_capacity_snapshot_from_description() -> None:
    snapshot = CapacitySnapshot.from_description(table_description("users", 12, 7))

    assert snapshot == CapacitySnapshot(read_capacity=12, write_capacity=7)


def test_capacity_snapshot_detects_on_demand() -> None:
    snapshot = CapacitySnapshot.from_description(
        table_description("users", on_demand=True)
    )

    assert snapshot.on_demand


def test_schema_document_json_round_trip() -> None:
    schema = SchemaDocument.from_description(table_description("users", 4, 2))

    restored = SchemaDocument.from_json(schema.to_json())

    assert restored == schema
    assert '"TableName": "users"' in schema.to_json()
    assert "TableStatus" not in schema.to_json()


def test_create_table_params_use_elevated_write_capacity() -> None:
    schema = SchemaDocument.from_description(table_description("users", 4, 2))

    params = schema.to_create_table_params("users-copy", write_capacity=100)

    assert params["TableName"] == "users-copy"
    assert params["BillingMode"] == "PROVISIONED"
    assert params["ProvisionedThroughput"] == {
        "ReadCapacityUnits": 4,
        "WriteCapacityUnits": 100,
    }
    assert params["KeySchema"] == [{"AttributeName": "id", "KeyType": "HASH"}]


def test_create_table_params_for_on_demand_tables() -> None:
    description = table_description("events", on_demand=True)
    description["GlobalSecondaryIndexes"] = [
        {
            "IndexName": "by-type",
            "KeySchema": [{"AttributeName": "type", "KeyType": "HASH"}],
            "Projection": {"ProjectionType": "KEYS_ONLY"},
            "IndexStatus": "ACTIVE",
        }
    ]
    schema = SchemaDocument.from_description(description)

    params = schema.to_create_table_params("events", write_capacity=100)

    assert params["BillingMode"] == "PAY_PER_REQUEST"
    assert "ProvisionedThroughput" not in params
    assert params["GlobalSecondaryIndexes"] == [
        {
            "IndexName": "by-type",
            "KeySchema": [{"AttributeName": "type", "KeyType": "HASH"}],
            "Projection": {"ProjectionType": "KEYS_ONLY"},
        }
    ]
