import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from dynamo_archive.clients.base import ObjectArchive, TableStore
from dynamo_archive.config.settings import ArchiveSettings
from dynamo_archive.core.archive import data_key, default_backup_path, schema_key
from dynamo_archive.core.capacity import CapacityGovernor
from dynamo_archive.core.codec import RecordCodec
from dynamo_archive.core.events import TransferEvents, TransferSignal
from dynamo_archive.core.models import (
    ArchiveLocation,
    CapacitySnapshot,
    SchemaDocument,
    TransferManifest,
    TransferPhase,
)
from dynamo_archive.core.scanner import TableScanner
from dynamo_archive.core.stream import StreamSink
from dynamo_archive.exceptions import TransferAbortedError, ValidationError
from dynamo_archive.utils.misc import utc_now


def select_tables(
    tables: list[str], included: list[str] | None, excluded: list[str]
) -> list[str]:
    """Keeps the tables named in `included` (all when None), minus the `excluded` ones."""
    excluded_set = set(excluded)
    return [
        table
        for table in tables
        if table not in excluded_set and (included is None or table in included)
    ]


@dataclass
class BackupReport:
    backup_path: str
    manifests: list[TransferManifest] = field(default_factory=list)
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class DynamoBackup:
    """
    Exports tables to the archive bucket.

    For every table the scan pushes encoded lines into a StreamSink while the
    archive pulls them out as a streamed upload, and the schema object is
    written next to the data object. Several tables run concurrently under one
    shared backup path.
    """

    def __init__(
        self,
        settings: ArchiveSettings,
        store: TableStore,
        archive: ObjectArchive,
        events: TransferEvents | None = None,
    ) -> None:
        if not settings.bucket:
            raise ValidationError("Please provide the archive bucket to back up to")
        self.settings = settings
        self.bucket = settings.bucket
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

    async def list_tables(self) -> list[str]:
        return await self.store.list_tables()

    def select_tables(self, tables: list[str]) -> list[str]:
        return select_tables(
            tables, self.settings.included_tables, self.settings.excluded_tables
        )

    async def backup_all_tables(self) -> BackupReport:
        backup_path = self.settings.backup_path or default_backup_path()
        tables = self.select_tables(await self.list_tables())
        report = BackupReport(backup_path=backup_path)
        logger.info(f"Backing up {len(tables)} tables to s3://{self.bucket}/{backup_path}")

        async def run(table_name: str) -> None:
            try:
                report.manifests.append(await self.backup_table(table_name, backup_path))
            except Exception as e:
                report.failures[table_name] = e
                if self.settings.stop_on_failure:
                    raise TransferAbortedError(table_name, e) from e
                logger.warning(f"Skipping table {table_name} after failure: {e}")

        tasks = [asyncio.create_task(run(table_name)) for table_name in tables]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return report

    async def backup_table(
        self, table_name: str, backup_path: str | None = None
    ) -> TransferManifest:
        if not table_name:
            raise ValidationError("Please provide the name of the table to back up")
        backup_path = backup_path or self.settings.backup_path or default_backup_path()
        manifest = TransferManifest(
            table_name=table_name,
            archive=ArchiveLocation(
                bucket=self.bucket, key=data_key(backup_path, table_name)
            ),
            started_at=utc_now(),
        )
        phase = TransferPhase.VALIDATING
        await self.events.emit(
            TransferSignal.START,
            table_name,
            f"Starting backup to {manifest.archive.uri}",
            phase=phase,
        )

        sink = StreamSink()
        tasks: list[asyncio.Task[Any]] = []
        try:
            table = await self.store.describe_table(table_name)
            schema = SchemaDocument.from_description(table)
            snapshot = CapacitySnapshot.from_description(table)
            limit = (
                self.settings.on_demand_page_limit
                if snapshot.on_demand
                else self.governor.read_limit(snapshot, self.settings.read_percentage)
            )

            phase = TransferPhase.SCANNING
            await self.events.emit(
                TransferSignal.PROGRESS,
                table_name,
                f"Scanning with a page limit of {limit} over {self.settings.total_segments} segments",
                phase=phase,
                limit=limit,
            )
            upload = asyncio.create_task(
                self.archive.upload_stream(self.bucket, manifest.archive.key, sink)
            )
            upload.add_done_callback(lambda task: _abort_on_failure(task, sink))
            scan = asyncio.create_task(self._scan_into(table_name, limit, sink))
            schema_upload = asyncio.create_task(
                self.archive.put_object(
                    self.bucket,
                    schema_key(backup_path, table_name),
                    schema.to_json().encode("utf-8"),
                )
            )
            tasks = [upload, scan, schema_upload]

            manifest.items_transferred, _ = await asyncio.gather(scan, schema_upload)
            sink.close()
            manifest.content_length = await upload
        except BaseException as e:
            sink.abort(e)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if isinstance(e, Exception):
                await self.events.emit(
                    TransferSignal.ERROR,
                    table_name,
                    f"Backup failed while {phase}: {e}",
                    phase=TransferPhase.FAILED,
                    error=e,
                    failed_phase=phase,
                )
            raise

        manifest.ended_at = utc_now()
        await self.events.emit(
            TransferSignal.FINISH,
            table_name,
            f"Backed up {manifest.items_transferred} items ({manifest.content_length} bytes) in {manifest.duration:.2f}s",
            phase=TransferPhase.DONE,
            items=manifest.items_transferred,
            bytes=manifest.content_length,
        )
        return manifest

    async def _scan_into(
        self,
        table_name: str,
        limit: int,
        sink: StreamSink,
    ) -> int:
        scanner = TableScanner(
            self.store,
            table_name,
            limit,
            total_segments=self.settings.total_segments,
        )
        count = 0
        async for page in scanner.pages():
            for item in page.items:
                sink.append(self.codec.encode_line(item))
            count += len(page.items)
            await self.events.emit(
                TransferSignal.PROGRESS,
                table_name,
                f"Scanned {count} items",
                phase=TransferPhase.SCANNING,
                items=count,
                segment=page.segment,
            )
            await sink.drain()
        return count


def _abort_on_failure(upload: "asyncio.Task[int]", sink: StreamSink) -> None:
    # a dead upload must release a producer waiting on sink.drain()
    if not upload.cancelled() and upload.exception() is not None:
        sink.abort(upload.exception())  # type: ignore[arg-type]
