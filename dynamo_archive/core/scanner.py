from typing import AsyncIterator

from loguru import logger

from dynamo_archive.clients.base import TableStore
from dynamo_archive.core.models import Page, Record
from dynamo_archive.utils.async_iterators import merge_async_iterators


class TableScanner:
    """
    Reads a whole table page by page, following the continuation key returned
    by each scan call until the store stops returning one.

    The page size limit is fixed for the life of the scanner: capacity figures
    read right after a throughput change may be stale, so it is never derived
    again mid-scan. When `total_segments` is above one, every segment is scanned
    concurrently and pages are yielded as they arrive, with no ordering across
    segments.

    Fetch errors are not retried here, they abort the scan and reach the caller.
    """

    def __init__(
        self,
        store: TableStore,
        table_name: str,
        limit: int,
        total_segments: int = 1,
    ) -> None:
        if limit < 1:
            raise ValueError("Scan limit must be at least 1")
        if total_segments < 1:
            raise ValueError("total_segments must be at least 1")
        self.store = store
        self.table_name = table_name
        self.limit = limit
        self.total_segments = total_segments
        self.pages_fetched = 0
        self.items_fetched = 0
        self._started = False

    async def pages(self) -> AsyncIterator[Page]:
        if self._started:
            raise RuntimeError(f"Scan of table {self.table_name} was already started")
        self._started = True

        if self.total_segments == 1:
            segments = [self._scan_segment(None)]
        else:
            segments = [
                self._scan_segment(segment) for segment in range(self.total_segments)
            ]
        async for page in merge_async_iterators(*segments):
            yield page

    async def items(self) -> AsyncIterator[Record]:
        async for page in self.pages():
            for item in page.items:
                yield item

    async def _scan_segment(self, segment: int | None) -> AsyncIterator[Page]:
        start_key: Record | None = None
        segment_label = "" if segment is None else f" segment {segment}"
        while True:
            page = await self.store.scan(
                self.table_name,
                self.limit,
                exclusive_start_key=start_key,
                segment=segment,
                total_segments=self.total_segments if segment is not None else None,
            )
            self.pages_fetched += 1
            self.items_fetched += len(page.items)
            logger.debug(
                f"Scanned {len(page.items)} items from {self.table_name}{segment_label}"
            )
            yield page
            if page.is_last:
                return
            start_key = page.last_evaluated_key
