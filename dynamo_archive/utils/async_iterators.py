import typing

import aiostream

T = typing.TypeVar("T")


async def merge_async_iterators(
    *iterators: typing.AsyncIterable[T],
) -> typing.AsyncIterator[T]:
    """
    Streams the results of several async iterators as soon as each one produces them,
    instead of exhausting the iterators one after the other.

    An exception raised by any iterator stops the merged stream and is raised to the
    consumer; the other iterators are closed.

    Usage:
    ```python
    async def segment(index: int):
        for page in range(3):
            yield (index, page)

    async for result in merge_async_iterators(segment(0), segment(1)):
        print(result)
    ```
    """
    if not iterators:
        return

    if len(iterators) == 1:
        async for item in iterators[0]:
            yield item
        return

    combine = aiostream.stream.merge(iterators[0], *iterators[1:])
    async with combine.stream() as streamer:
        async for item in streamer:
            yield item
