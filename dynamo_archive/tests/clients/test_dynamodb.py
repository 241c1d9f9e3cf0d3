from typing import Any, AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from dynamo_archive.clients.dynamodb import DynamoDBTableStore
from dynamo_archive.exceptions import NotFoundError, TransientStoreError

ITEM = {"id": {"S": "1"}}


def mock_client() -> MagicMock:
    client = MagicMock()
    for method in ("describe_table", "create_table", "update_table", "scan", "batch_write_item"):
        setattr(client, method, AsyncMock())
    return client


@pytest.mark.asyncio
async def test_list_tables_collects_every_page() -> None:
    client = mock_client()

    async def pages(**kwargs: Any) -> AsyncIterator[dict[str, Any]]:
        yield {"TableNames": ["a", "b"], "LastEvaluatedTableName": "b"}
        yield {"TableNames": ["c"]}

    client.get_paginator.return_value.paginate = pages

    assert await DynamoDBTableStore(client).list_tables() == ["a", "b", "c"]
    client.get_paginator.assert_called_once_with("list_tables")


@pytest.mark.asyncio
async def test_describe_missing_table_raises_not_found() -> None:
    client = mock_client()
    client.describe_table.side_effect = ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "missing"}},
        "DescribeTable",
    )
    store = DynamoDBTableStore(client)

    with pytest.raises(NotFoundError):
        await store.describe_table("users")


@pytest.mark.asyncio
async def test_scan_passes_paging_and_segment_parameters() -> None:
    client = mock_client()
    client.scan.return_value = {"Items": [ITEM], "LastEvaluatedKey": ITEM}

    page = await DynamoDBTableStore(client).scan(
        "users", 10, exclusive_start_key=ITEM, segment=1, total_segments=4
    )

    client.scan.assert_awaited_once_with(
        TableName="users",
        Limit=10,
        ReturnConsumedCapacity="NONE",
        ExclusiveStartKey=ITEM,
        Segment=1,
        TotalSegments=4,
    )
    assert page.items == [ITEM]
    assert page.last_evaluated_key == ITEM
    assert page.segment == 1


@pytest.mark.asyncio
async def test_last_scan_page_has_no_continuation_key() -> None:
    client = mock_client()
    client.scan.return_value = {"Items": []}

    page = await DynamoDBTableStore(client).scan("users", 10)

    assert page.is_last
    assert "ExclusiveStartKey" not in client.scan.await_args.kwargs
    assert "Segment" not in client.scan.await_args.kwargs


@pytest.mark.asyncio
async def test_batch_write_returns_unprocessed_items() -> None:
    client = mock_client()
    other = {"id": {"S": "2"}}
    client.batch_write_item.return_value = {
        "UnprocessedItems": {"users": [{"PutRequest": {"Item": other}}]}
    }

    unprocessed = await DynamoDBTableStore(client).batch_write("users", [ITEM, other])

    assert unprocessed == [other]
    client.batch_write_item.assert_awaited_once_with(
        RequestItems={
            "users": [{"PutRequest": {"Item": ITEM}}, {"PutRequest": {"Item": other}}]
        }
    )


@pytest.mark.asyncio
async def test_throttled_batch_write_is_transient() -> None:
    client = mock_client()
    client.batch_write_item.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}},
        "BatchWriteItem",
    )

    with pytest.raises(TransientStoreError):
        await DynamoDBTableStore(client).batch_write("users", [ITEM])


@pytest.mark.asyncio
async def test_update_table_sets_provisioned_throughput() -> None:
    client = mock_client()
    client.update_table.return_value = {"TableDescription": {"TableName": "users"}}

    await DynamoDBTableStore(client).update_table("users", 5, 100)

    client.update_table.assert_awaited_once_with(
        TableName="users",
        ProvisionedThroughput={"ReadCapacityUnits": 5, "WriteCapacityUnits": 100},
    )


@pytest.mark.asyncio
async def test_table_exists() -> None:
    client = mock_client()

    async def pages(**kwargs: Any) -> AsyncIterator[dict[str, Any]]:
        yield {"TableNames": ["users"]}

    client.get_paginator.return_value.paginate = pages
    store = DynamoDBTableStore(client)

    assert await store.table_exists("users")
    assert not await store.table_exists("orders")
