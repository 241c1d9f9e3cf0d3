import asyncio
from typing import AsyncIterator

import pytest

from dynamo_archive.utils.async_iterators import merge_async_iterators


async def numbers(start: int, count: int, delay: float = 0) -> AsyncIterator[int]:
    for value in range(start, start + count):
        await asyncio.sleep(delay)
        yield value


@pytest.mark.asyncio
async def test_merge_yields_every_item() -> None:
    merged = [
        value
        async for value in merge_async_iterators(numbers(0, 3), numbers(10, 2), numbers(20, 4))
    ]

    assert sorted(merged) == [0, 1, 2, 10, 11, 20, 21, 22, 23]


@pytest.mark.asyncio
async def test_merge_interleaves_slow_and_fast_iterators() -> None:
    merged = [
        value
        async for value in merge_async_iterators(numbers(0, 2, delay=0.05), numbers(10, 2))
    ]

    assert merged[:2] == [10, 11]


@pytest.mark.asyncio
async def test_single_iterator_passes_through() -> None:
    assert [value async for value in merge_async_iterators(numbers(0, 3))] == [0, 1, 2]


@pytest.mark.asyncio
async def test_merge_of_nothing_is_empty() -> None:
    assert [value async for value in merge_async_iterators()] == []


@pytest.mark.asyncio
async def test_errors_reach_the_consumer() -> None:
    async def failing() -> AsyncIterator[int]:
        yield 1
        raise RuntimeError("segment failed")

    with pytest.raises(RuntimeError, match="segment failed"):
        async for _ in merge_async_iterators(failing(), numbers(0, 100, delay=0.01)):
            pass
