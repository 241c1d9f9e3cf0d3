from typing import Any, AsyncIterator

from aiobotocore.client import AioBaseClient
from loguru import logger


async def iterate_pages(
    client: AioBaseClient, operation: str, result_key: str, **params: Any
) -> AsyncIterator[list[Any]]:
    """Yields `result_key` of every page returned by the client's paginator for `operation`."""
    paginator = client.get_paginator(operation)
    page_number = 0
    async for page in paginator.paginate(**params):
        page_number += 1
        results = page.get(result_key, [])
        logger.debug(f"{operation} page {page_number} returned {len(results)} {result_key}")
        yield results


async def collect_pages(
    client: AioBaseClient, operation: str, result_key: str, **params: Any
) -> list[Any]:
    collected: list[Any] = []
    async for results in iterate_pages(client, operation, result_key, **params):
        collected.extend(results)
    return collected
