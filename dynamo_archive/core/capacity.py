import asyncio
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger

from dynamo_archive.clients.base import TableStore
from dynamo_archive.core.models import ACTIVE_TABLE_STATUS, CapacitySnapshot
from dynamo_archive.exceptions import (
    CapacityConflictError,
    TableNotActiveError,
    ThroughputUnchangedError,
)


class CapacityGovernor:
    """
    Derives request limits from provisioned capacity and raises write capacity
    for the duration of a load.

    Only one structural change is allowed in flight per table store, so boost
    and restore are serialized on a single lock, and a change rejected because
    another is pending is retried after `conflict_backoff` seconds.
    """

    def __init__(
        self,
        store: TableStore,
        poll_interval: float = 1.0,
        conflict_backoff: float = 5.0,
        max_conflict_retries: int = 60,
        max_wait: float | None = None,
    ) -> None:
        self.store = store
        self.poll_interval = poll_interval
        self.conflict_backoff = conflict_backoff
        self.max_conflict_retries = max_conflict_retries
        self.max_wait = max_wait
        self._lock = asyncio.Lock()

    @staticmethod
    def read_limit(snapshot: CapacitySnapshot, utilization_fraction: float) -> int:
        return max(1, math.floor(snapshot.read_capacity * utilization_fraction))

    async def snapshot(self, table_name: str) -> CapacitySnapshot:
        return CapacitySnapshot.from_description(
            await self.store.describe_table(table_name)
        )

    async def wait_until_active(self, table_name: str) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        while True:
            table = await self.store.describe_table(table_name)
            status = table.get("TableStatus")
            if status == ACTIVE_TABLE_STATUS:
                return
            waited = loop.time() - started
            if self.max_wait is not None and waited >= self.max_wait:
                raise TableNotActiveError(table_name, status, waited)
            logger.debug(
                f"Table {table_name} is {status}, checking again in {self.poll_interval}s"
            )
            await asyncio.sleep(self.poll_interval)

    async def boost_write_capacity(
        self, table_name: str, target: int
    ) -> CapacitySnapshot:
        async with self._lock:
            old = await self.snapshot(table_name)
            if old.on_demand or old.write_capacity >= target:
                logger.info(
                    f"Write capacity of {table_name} already fits the load, leaving it at {old.write_capacity}"
                )
                return old
            logger.info(
                f"Raising write capacity of {table_name} from {old.write_capacity} to {target}"
            )
            try:
                await self._apply(table_name, old.read_capacity, target)
            except BaseException:
                # The change may have been applied before the failure surfaced
                await self._restore_unlocked(table_name, old)
                raise
            return old

    async def restore(self, table_name: str, snapshot: CapacitySnapshot) -> None:
        async with self._lock:
            await self._restore_unlocked(table_name, snapshot)

    @asynccontextmanager
    async def elevated(
        self,
        table_name: str,
        target: int,
        restore_to: CapacitySnapshot | None = None,
    ) -> AsyncIterator[CapacitySnapshot]:
        """Holds write capacity at `target` and restores it exactly once on exit.

        `restore_to` overrides the snapshot taken before the boost, for tables
        that were created with the elevated capacity in the first place.
        """
        snapshot = restore_to
        try:
            old = await self.boost_write_capacity(table_name, target)
            snapshot = restore_to or old
            yield snapshot
        finally:
            # without restore_to a failed boost has already put the old values back
            if snapshot is not None:
                await self.restore(table_name, snapshot)

    async def _restore_unlocked(
        self, table_name: str, snapshot: CapacitySnapshot
    ) -> None:
        if snapshot.on_demand:
            return
        current = await self.snapshot(table_name)
        if (current.read_capacity, current.write_capacity) == (
            snapshot.read_capacity,
            snapshot.write_capacity,
        ):
            return
        logger.info(
            f"Restoring capacity of {table_name} to {snapshot.read_capacity} read / {snapshot.write_capacity} write"
        )
        try:
            await self._apply(
                table_name, snapshot.read_capacity, snapshot.write_capacity
            )
        except ThroughputUnchangedError:
            logger.debug(f"Capacity of {table_name} was already at the restored values")

    async def _apply(self, table_name: str, read: int, write: int) -> None:
        attempt = 0
        while True:
            try:
                await self.store.update_table(table_name, read, write)
                break
            except CapacityConflictError as e:
                attempt += 1
                if attempt > self.max_conflict_retries:
                    raise
                logger.warning(
                    f"Capacity change on {table_name} rejected ({e}), retrying in {self.conflict_backoff}s"
                )
                await asyncio.sleep(self.conflict_backoff)
                await self.wait_until_active(table_name)
        await self.wait_until_active(table_name)
