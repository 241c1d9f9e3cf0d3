from loguru import logger

from dynamo_archive.clients.base import ObjectArchive, TableStore
from dynamo_archive.config.settings import ArchiveSettings
from dynamo_archive.core.archive import parse_source_uri, schema_location_for
from dynamo_archive.core.batch_writer import BatchWriter
from dynamo_archive.core.capacity import CapacityGovernor
from dynamo_archive.core.codec import RecordCodec
from dynamo_archive.core.events import TransferEvents, TransferSignal
from dynamo_archive.core.flow_control import FlowController
from dynamo_archive.core.models import (
    ArchiveLocation,
    CapacitySnapshot,
    SchemaDocument,
    TransferManifest,
    TransferPhase,
)
from dynamo_archive.core.stream import StreamSource
from dynamo_archive.exceptions import NotFoundError, ValidationError
from dynamo_archive.utils.misc import utc_now

PROGRESS_EVERY_LINES = 1000


class DynamoRestore:
    """
    Imports one archived table into DynamoDB.

    A restore walks through the phases of `TransferPhase` in order and reports
    each transition as a progress event. Any failure moves it to FAILED, emits
    an error event naming the phase it failed in, and propagates. The write
    capacity raised for the load is always put back before `restore` returns
    or raises.
    """

    def __init__(
        self,
        settings: ArchiveSettings,
        store: TableStore,
        archive: ObjectArchive,
        events: TransferEvents | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.archive = archive
        self.events = events or TransferEvents()
        self.codec = RecordCodec(
            binary_as_base64=settings.binary_as_base64,
            bulk_loader_format=settings.bulk_loader_format,
        )
        self.governor = CapacityGovernor(
            store,
            poll_interval=settings.table_poll_interval_seconds,
            max_wait=settings.table_active_timeout_seconds,
        )
        self.phase = TransferPhase.VALIDATING

    async def restore(self, source_uri: str, table_name: str) -> TransferManifest:
        self.phase = TransferPhase.VALIDATING
        await self.events.emit(
            TransferSignal.START,
            table_name or "",
            f"Starting restore from {source_uri}",
            phase=self.phase,
        )
        try:
            manifest = await self._restore(source_uri, table_name)
        except Exception as e:
            failed_phase = self.phase
            self.phase = TransferPhase.FAILED
            await self.events.emit(
                TransferSignal.ERROR,
                table_name or "",
                f"Restore failed while {failed_phase}: {e}",
                phase=self.phase,
                error=e,
                failed_phase=failed_phase,
            )
            raise

        await self.events.emit(
            TransferSignal.FINISH,
            table_name,
            f"Restored {manifest.items_transferred} items in {manifest.duration:.2f}s",
            phase=self.phase,
            items=manifest.items_transferred,
            dropped=manifest.items_dropped,
        )
        return manifest

    async def _restore(self, source_uri: str, table_name: str) -> TransferManifest:
        if not table_name:
            raise ValidationError("Please provide the name of the table to restore to")
        source = parse_source_uri(source_uri)
        schema_source = schema_location_for(source)
        for location in (source, schema_source):
            if await self.archive.head_object(location.bucket, location.key) is None:
                raise NotFoundError(f"Backup object {location.uri} does not exist")

        manifest = TransferManifest(
            table_name=table_name,
            archive=source,
            started_at=utc_now(),
        )

        await self._transition(table_name, TransferPhase.FETCHING_SCHEMA)
        schema = await self._fetch_schema(schema_source)

        await self._transition(table_name, TransferPhase.CREATING_OR_CHECKING_TABLE)
        restore_to = await self._prepare_table(table_name, schema)

        try:
            await self._transition(table_name, TransferPhase.WAITING_TABLE_ACTIVE)
            await self.governor.wait_until_active(table_name)
        except BaseException:
            # a table created at the raised capacity must not keep it
            if restore_to is not None:
                await self.governor.restore(table_name, restore_to)
            raise

        async with self.governor.elevated(
            table_name, self.settings.restore_write_capacity, restore_to=restore_to
        ):
            await self._transition(table_name, TransferPhase.STREAMING)
            await self._stream_into(table_name, source, manifest)
            # leaving the block puts the capacity back
            await self._transition(table_name, TransferPhase.RESTORING_CAPACITY)

        self.phase = TransferPhase.DONE
        manifest.ended_at = utc_now()
        return manifest

    async def _fetch_schema(self, location: ArchiveLocation) -> SchemaDocument:
        raw = await self.archive.read_object(location.bucket, location.key)
        try:
            return SchemaDocument.from_json(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid schema document {location.uri}: {e}") from e

    async def _prepare_table(
        self, table_name: str, schema: SchemaDocument
    ) -> CapacitySnapshot | None:
        """Creates the table when absent, returning the capacity it must end up with.

        For an existing table None is returned and the capacity observed before
        the boost is restored instead.
        """
        if not await self.store.table_exists(table_name):
            logger.info(f"Creating table {table_name} from the archived schema")
            await self.store.create_table(
                **schema.to_create_table_params(
                    table_name, write_capacity=self.settings.restore_write_capacity
                )
            )
            return schema.capacity

        if not self.settings.overwrite:
            raise ValidationError(
                f"Table {table_name} already exists, set overwrite to load into it"
            )
        await self.events.emit(
            TransferSignal.WARNING,
            table_name,
            f"Table {table_name} already exists, loading into it",
            phase=self.phase,
        )
        return None

    async def _stream_into(
        self, table_name: str, source: ArchiveLocation, manifest: TransferManifest
    ) -> None:
        chunks, content_length = await self.archive.get_object(
            source.bucket, source.key
        )
        manifest.content_length = content_length
        reader = StreamSource(chunks, content_length=content_length)
        flow = FlowController(
            min_concurrency=self.settings.min_concurrency,
            max_concurrency=self.settings.max_concurrency,
            request_interval=self.settings.request_interval,
        )
        writer = BatchWriter(
            self.store,
            table_name,
            flow,
            batch_size=self.settings.batch_size,
            max_attempts=self.settings.max_attempts,
            stop_on_failure=self.settings.stop_on_failure,
            retry_backoff=self.settings.retry_backoff_seconds,
            events=self.events,
        )
        try:
            async with writer:
                async for line in reader.lines():
                    if flow.should_pause_upstream():
                        reader.pause()
                        await writer.wait_writable()
                        reader.resume()
                    await writer.put(self.codec.decode(line))
                    if reader.lines_read % PROGRESS_EVERY_LINES == 0:
                        await self._report_download(table_name, reader)
                await writer.close()
                await self._transition(table_name, TransferPhase.DRAINING)
        finally:
            manifest.items_transferred = writer.items_written
            manifest.items_dropped = writer.items_dropped

    async def _report_download(self, table_name: str, reader: StreamSource) -> None:
        await self.events.emit(
            TransferSignal.PROGRESS,
            table_name,
            f"Read {reader.lines_read} lines, {reader.remaining} bytes remaining",
            phase=self.phase,
            lines=reader.lines_read,
            remaining=reader.remaining,
        )

    async def _transition(self, table_name: str, phase: TransferPhase) -> None:
        self.phase = phase
        await self.events.emit(
            TransferSignal.PROGRESS, table_name, f"Entering {phase}", phase=phase
        )

