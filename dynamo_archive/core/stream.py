import asyncio
from typing import AsyncIterator

from loguru import logger

from dynamo_archive.exceptions import CodecError, StreamClosedError

DEFAULT_HIGH_WATER_MARK = 16 * 1024 * 1024


class StreamSink:
    """Append-only buffer between a record producer and a pull-based upload.

    The producer calls `append` for every encoded line, which never blocks,
    and may `await drain()` to wait while the buffer is above the high-water
    mark. The uploader pulls with `read(n)`, which waits until `n` bytes are
    available or the sink is closed.
    """

    def __init__(self, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        self.high_water_mark = high_water_mark
        self.bytes_appended = 0
        self._buffer = bytearray()
        self._closed = False
        self._error: BaseException | None = None
        self._data_ready = asyncio.Event()
        self._space_ready = asyncio.Event()
        self._space_ready.set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def append(self, data: bytes | str) -> None:
        if self._error is not None:
            raise self._error
        if self._closed:
            raise StreamClosedError("Cannot append to a closed stream")
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buffer.extend(data)
        self.bytes_appended += len(data)
        self._data_ready.set()
        if len(self._buffer) >= self.high_water_mark:
            self._space_ready.clear()

    def close(self) -> None:
        self._closed = True
        self._data_ready.set()

    def abort(self, error: BaseException) -> None:
        self._error = error
        self._closed = True
        self._data_ready.set()
        self._space_ready.set()

    async def drain(self) -> None:
        await self._space_ready.wait()
        if self._error is not None:
            raise self._error

    async def read(self, n: int) -> bytes:
        while len(self._buffer) < n and not self._closed:
            self._data_ready.clear()
            await self._data_ready.wait()
        if self._error is not None:
            raise self._error
        chunk = bytes(self._buffer[:n])
        del self._buffer[:n]
        if len(self._buffer) < self.high_water_mark:
            self._space_ready.set()
        return chunk


class StreamSource:
    """Line reader over a downloaded object, paused and resumed by its consumer.

    While paused, no further chunk is pulled from the underlying transport.
    """

    def __init__(
        self, chunks: AsyncIterator[bytes], content_length: int = 0, encoding: str = "utf-8"
    ) -> None:
        self._chunks = chunks
        self.content_length = content_length
        self.encoding = encoding
        self.bytes_read = 0
        self.lines_read = 0
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    @property
    def remaining(self) -> int:
        return max(self.content_length - self.bytes_read, 0)

    def pause(self) -> None:
        if not self.paused:
            logger.debug(f"Pausing download with {self.remaining} bytes remaining")
        self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    async def lines(self) -> AsyncIterator[str]:
        pending = b""
        while True:
            await self._resumed.wait()
            try:
                chunk = await anext(self._chunks)
            except StopAsyncIteration:
                break
            self.bytes_read += len(chunk)
            pending += chunk
            *complete, pending = pending.split(b"\n")
            for raw_line in complete:
                line = self._decode(raw_line)
                if line:
                    yield line
        line = self._decode(pending)
        if line:
            yield line

    def _decode(self, raw_line: bytes) -> str:
        try:
            line = raw_line.decode(self.encoding).rstrip("\r")
        except UnicodeDecodeError as e:
            raise CodecError(
                f"Line {self.lines_read + 1} is not valid {self.encoding}: {e}"
            ) from e
        if line.strip():
            self.lines_read += 1
            return line
        return ""
