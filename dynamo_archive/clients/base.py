from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, TYPE_CHECKING

from dynamo_archive.core.models import Page, Record

if TYPE_CHECKING:
    from dynamo_archive.core.stream import StreamSink


class TableStore(ABC):
    """Capability interface of the key-value store that owns the tables."""

    @abstractmethod
    async def list_tables(self) -> list[str]: ...

    @abstractmethod
    async def describe_table(self, table_name: str) -> dict[str, Any]:
        """Return the `Table` part of a DescribeTable response.

        Raises NotFoundError when the table does not exist.
        """

    @abstractmethod
    async def create_table(self, **params: Any) -> dict[str, Any]: ...

    @abstractmethod
    async def update_table(
        self, table_name: str, read_capacity: int, write_capacity: int
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def scan(
        self,
        table_name: str,
        limit: int,
        exclusive_start_key: Record | None = None,
        segment: int | None = None,
        total_segments: int | None = None,
    ) -> Page: ...

    @abstractmethod
    async def batch_write(self, table_name: str, items: list[Record]) -> list[Record]:
        """Put `items` and return the ones the store left unprocessed."""

    async def table_exists(self, table_name: str) -> bool:
        return table_name in await self.list_tables()


class ObjectArchive(ABC):
    """Capability interface of the object store holding the archives."""

    @abstractmethod
    async def head_object(self, bucket: str, key: str) -> dict[str, Any] | None:
        """Return the object metadata, or None when the object does not exist."""

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> tuple[AsyncIterator[bytes], int]:
        """Return a byte-chunk iterator over the object and its content length."""

    @abstractmethod
    async def put_object(self, bucket: str, key: str, body: bytes) -> None: ...

    @abstractmethod
    async def upload_stream(self, bucket: str, key: str, sink: "StreamSink") -> int:
        """Upload everything appended to `sink` until it is closed.

        Returns the number of bytes uploaded.
        """

    async def read_object(self, bucket: str, key: str) -> bytes:
        chunks, _ = await self.get_object(bucket, key)
        return b"".join([chunk async for chunk in chunks])
