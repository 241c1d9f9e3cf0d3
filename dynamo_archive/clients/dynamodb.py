from typing import Any

from aiobotocore.client import AioBaseClient
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from dynamo_archive.clients.base import TableStore
from dynamo_archive.clients.errors import translate_aws_error
from dynamo_archive.clients.paginator import collect_pages
from dynamo_archive.core.models import Page, Record


class DynamoDBTableStore(TableStore):
    """TableStore backed by an aiobotocore DynamoDB client.

    Items travel in the low-level attribute value shape, exactly as the
    archive stores them. Every botocore failure is translated into the
    transfer error taxonomy.
    """

    def __init__(self, client: AioBaseClient) -> None:
        self._client = client

    async def list_tables(self) -> list[str]:
        try:
            return await collect_pages(self._client, "list_tables", "TableNames")
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, "ListTables") from e

    async def describe_table(self, table_name: str) -> dict[str, Any]:
        try:
            response = await self._client.describe_table(TableName=table_name)
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"DescribeTable {table_name}") from e
        return response["Table"]

    async def create_table(self, **params: Any) -> dict[str, Any]:
        try:
            response = await self._client.create_table(**params)
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"CreateTable {params.get('TableName')}") from e
        logger.info(f"Created table {params.get('TableName')}")
        return response["TableDescription"]

    async def update_table(
        self, table_name: str, read_capacity: int, write_capacity: int
    ) -> dict[str, Any]:
        try:
            response = await self._client.update_table(
                TableName=table_name,
                ProvisionedThroughput={
                    "ReadCapacityUnits": read_capacity,
                    "WriteCapacityUnits": write_capacity,
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"UpdateTable {table_name}") from e
        return response["TableDescription"]

    async def scan(
        self,
        table_name: str,
        limit: int,
        exclusive_start_key: Record | None = None,
        segment: int | None = None,
        total_segments: int | None = None,
    ) -> Page:
        params: dict[str, Any] = {
            "TableName": table_name,
            "Limit": limit,
            "ReturnConsumedCapacity": "NONE",
        }
        if exclusive_start_key:
            params["ExclusiveStartKey"] = exclusive_start_key
        if segment is not None and total_segments is not None:
            params["Segment"] = segment
            params["TotalSegments"] = total_segments
        try:
            response = await self._client.scan(**params)
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"Scan {table_name}") from e
        return Page(
            items=response.get("Items", []),
            last_evaluated_key=response.get("LastEvaluatedKey") or None,
            segment=segment,
        )

    async def batch_write(self, table_name: str, items: list[Record]) -> list[Record]:
        try:
            response = await self._client.batch_write_item(
                RequestItems={
                    table_name: [{"PutRequest": {"Item": item}} for item in items]
                }
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"BatchWriteItem {table_name}") from e
        unprocessed = response.get("UnprocessedItems", {}).get(table_name, [])
        return [request["PutRequest"]["Item"] for request in unprocessed]
