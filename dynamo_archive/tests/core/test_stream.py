import asyncio
from typing import AsyncIterator

import pytest

from dynamo_archive.core.stream import StreamSink, StreamSource
from dynamo_archive.exceptions import CodecError, StreamClosedError


async def chunked(*chunks: bytes) -> AsyncIterator[bytes]:
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk


@pytest.mark.asyncio
async def test_sink_read_returns_parts_then_remainder() -> None:
    sink = StreamSink()
    sink.append(b"0123456789")
    sink.append("abc")
    sink.close()

    assert await sink.read(8) == b"01234567"
    assert await sink.read(8) == b"89abc"
    assert await sink.read(8) == b""
    assert sink.bytes_appended == 13


@pytest.mark.asyncio
async def test_sink_read_waits_for_enough_data() -> None:
    sink = StreamSink()
    reader = asyncio.create_task(sink.read(4))
    sink.append(b"ab")
    await asyncio.sleep(0.01)
    assert not reader.done()

    sink.append(b"cdef")
    assert await asyncio.wait_for(reader, timeout=1) == b"abcd"


def test_append_after_close_raises() -> None:
    sink = StreamSink()
    sink.close()

    with pytest.raises(StreamClosedError):
        sink.append(b"late")


@pytest.mark.asyncio
async def test_drain_waits_below_high_water_mark() -> None:
    sink = StreamSink(high_water_mark=4)
    sink.append(b"12345")
    drain = asyncio.create_task(sink.drain())
    await asyncio.sleep(0.01)
    assert not drain.done()

    await sink.read(3)
    await asyncio.wait_for(drain, timeout=1)


@pytest.mark.asyncio
async def test_abort_releases_both_sides_with_the_error() -> None:
    sink = StreamSink(high_water_mark=1)
    sink.append(b"xx")
    error = RuntimeError("upload failed")

    sink.abort(error)

    with pytest.raises(RuntimeError, match="upload failed"):
        await sink.drain()
    with pytest.raises(RuntimeError, match="upload failed"):
        await sink.read(10)


@pytest.mark.asyncio
async def test_source_splits_lines_across_chunks() -> None:
    source = StreamSource(
        chunked(b'{"a":1}\n{"b"', b':2}\n\n{"c":3}'), content_length=24
    )

    lines = [line async for line in source.lines()]

    assert lines == ['{"a":1}', '{"b":2}', '{"c":3}']
    assert source.lines_read == 3
    assert source.remaining == 0


@pytest.mark.asyncio
async def test_paused_source_stops_pulling_chunks() -> None:
    pulled = []

    async def tracked() -> AsyncIterator[bytes]:
        for chunk in (b"1\n", b"2\n", b"3\n"):
            pulled.append(chunk)
            yield chunk

    source = StreamSource(tracked())
    lines = source.lines()
    assert await anext(lines) == "1"

    source.pause()
    next_line = asyncio.create_task(anext(lines))
    await asyncio.sleep(0.01)
    assert not next_line.done()
    assert pulled == [b"1\n"]

    source.resume()
    assert await asyncio.wait_for(next_line, timeout=1) == "2"


@pytest.mark.asyncio
async def test_source_rejects_lines_that_are_not_utf8() -> None:
    source = StreamSource(chunked(b'{"id":{"S":"1"}}\n', b'{"id":{"S":"\xff"}}\n'))
    lines = source.lines()

    assert await anext(lines) == '{"id":{"S":"1"}}'
    with pytest.raises(CodecError, match="Line 2 is not valid utf-8"):
        await anext(lines)
