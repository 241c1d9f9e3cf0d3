import asyncio
from collections import deque
from typing import Any

from loguru import logger

from dynamo_archive.clients.base import TableStore
from dynamo_archive.core.events import TransferEvents, TransferSignal
from dynamo_archive.core.flow_control import FlowController
from dynamo_archive.core.models import Batch, Record
from dynamo_archive.exceptions import BatchRetriesExhaustedError, TransientStoreError

DYNAMO_BATCH_SIZE = 25
MAX_RETRY_BACKOFF_SECONDS = 20.0


class BatchWriter:
    """
    Groups incoming records into batches and submits them through BatchWriteItem.

    A dispatcher task submits queued batches whenever the flow controller admits
    one more request. Items reported back as unprocessed, as well as whole
    batches whose call failed with a transient error, return to the front of the
    queue as a new batch with one more attempt, so retries go out before fresh
    batches. Once a batch would go past `max_attempts` it is either dropped with
    a warning or, when `stop_on_failure` is set, fails the whole transfer.

    Usage:
        async with BatchWriter(store, "users", flow) as writer:
            async for record in records:
                await writer.put(record)
        # leaving the block flushes the last batch and waits for the drain
    """

    def __init__(
        self,
        store: TableStore,
        table_name: str,
        flow: FlowController,
        *,
        batch_size: int = DYNAMO_BATCH_SIZE,
        max_attempts: int = 5,
        stop_on_failure: bool = False,
        retry_backoff: float = 0.5,
        events: TransferEvents | None = None,
    ) -> None:
        if not 1 <= batch_size <= DYNAMO_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {DYNAMO_BATCH_SIZE}")
        self.store = store
        self.table_name = table_name
        self.flow = flow
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.stop_on_failure = stop_on_failure
        self.retry_backoff = retry_backoff
        self.events = events or TransferEvents()

        self.items_written = 0
        self.items_dropped = 0
        self.batches_submitted = 0

        self._buffer: list[Record] = []
        self._pending: deque[Batch] = deque()
        self._in_flight_tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self._failure: BaseException | None = None
        self._dispatcher: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "BatchWriter":
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc is None:
            await self.close()
            await self.drain()
        else:
            await self.cancel()

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def failure(self) -> BaseException | None:
        return self._failure

    def start(self) -> None:
        if self._dispatcher is None:
            self._dispatcher = asyncio.create_task(self._dispatch())

    async def put(self, record: Record) -> None:
        self._raise_on_failure()
        if self._closed:
            raise RuntimeError("Cannot put records into a closed batch writer")
        await self.wait_writable()
        self._buffer.append(record)
        if len(self._buffer) >= self.batch_size:
            await self._enqueue(Batch(items=self._buffer))
            self._buffer = []

    async def wait_writable(self) -> None:
        """Blocks the producer while the flow controller holds upstream paused."""
        await self.flow.wait_upstream(lambda: self._failure is not None)
        self._raise_on_failure()

    async def close(self) -> None:
        """Queues the last partial batch, no record may be put afterwards."""
        if self._closed:
            return
        self._closed = True
        if self._buffer:
            await self._enqueue(Batch(items=self._buffer))
            self._buffer = []
        await self.flow.notify()

    async def drain(self) -> None:
        """Waits until every batch is written, retried to exhaustion or dropped."""
        self.start()
        await self.flow.wait_for(
            lambda: self._failure is not None or self._drained()
        )
        if self._dispatcher is not None:
            await asyncio.gather(self._dispatcher, return_exceptions=True)
        self._raise_on_failure()

    async def cancel(self) -> None:
        tasks = list(self._in_flight_tasks)
        if self._dispatcher is not None:
            tasks.append(self._dispatcher)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _drained(self) -> bool:
        return self._closed and self.flow.finished(len(self._pending))

    def _raise_on_failure(self) -> None:
        if self._failure is not None:
            raise self._failure

    async def _enqueue(self, batch: Batch, front: bool = False) -> None:
        if front:
            self._pending.appendleft(batch)
        else:
            self._pending.append(batch)
        await self.flow.set_queue_depth(len(self._pending))

    async def _dispatch(self) -> None:
        while True:
            await self.flow.wait_for(
                lambda: self._failure is not None
                or (bool(self._pending) and self.flow.admitted())
                or self._drained()
            )
            if self._failure is not None or not self._pending:
                return
            await self.flow.acquire()
            batch = self._pending.popleft()
            await self.flow.set_queue_depth(len(self._pending))
            task = asyncio.create_task(self._submit(batch))
            self._in_flight_tasks.add(task)
            task.add_done_callback(self._in_flight_tasks.discard)

    async def _submit(self, batch: Batch) -> None:
        success = False
        try:
            self.batches_submitted += 1
            await self.events.emit(
                TransferSignal.PROGRESS,
                self.table_name,
                f"Sending batch of {len(batch)} items",
                queued=len(self._pending),
                in_flight=self.flow.in_flight,
                concurrency=self.flow.concurrency,
                attempts=batch.attempts,
            )
            try:
                unprocessed = await self.store.batch_write(
                    self.table_name, batch.items
                )
            except TransientStoreError as e:
                await self.events.emit(
                    TransferSignal.WARNING,
                    self.table_name,
                    f"Error processing batch, putting back in the queue: {e}",
                    error=e,
                )
                await self._retry(batch.retry())
                return

            self.items_written += len(batch) - len(unprocessed)
            if unprocessed:
                await self.events.emit(
                    TransferSignal.WARNING,
                    self.table_name,
                    f"{len(unprocessed)} unprocessed items. Add to queue and back off a bit.",
                    unprocessed=len(unprocessed),
                )
                await self._retry(batch.retry(unprocessed))
                return
            success = True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Batch write to {self.table_name} failed: {e}")
            await self._fail(e)
        finally:
            await self.flow.release(success)

    async def _retry(self, batch: Batch) -> None:
        if batch.attempts > self.max_attempts:
            if self.stop_on_failure:
                await self._fail(
                    BatchRetriesExhaustedError(
                        self.table_name, batch.attempts, len(batch)
                    )
                )
                return
            self.items_dropped += len(batch)
            await self.events.emit(
                TransferSignal.WARNING,
                self.table_name,
                f"Dropping {len(batch)} items after {batch.attempts} attempts",
                dropped=len(batch),
            )
            return
        delay = min(
            self.retry_backoff * 2 ** (batch.attempts - 1), MAX_RETRY_BACKOFF_SECONDS
        )
        if delay > 0:
            await asyncio.sleep(delay)
        await self._enqueue(batch, front=True)

    async def _fail(self, error: BaseException) -> None:
        if self._failure is None:
            self._failure = error
        await self.flow.notify()
