# -*- coding: utf-8 -*-

import click
from rich.table import Table

from dynamo_archive.cli.commands.main import (
    CliContext,
    cli_start,
    console,
    run_async,
    transfer_context,
)
from dynamo_archive.config.settings import ArchiveSettings
from dynamo_archive.core.backup import BackupReport, DynamoBackup


async def _backup(settings: ArchiveSettings) -> BackupReport:
    async with transfer_context(settings) as context:
        return await DynamoBackup(
            settings, context.store, context.archive, context.events
        ).backup_all_tables()


def print_report(report: BackupReport) -> None:
    table = Table(title=f"Backup {report.backup_path}")
    table.add_column("Table")
    table.add_column("Items", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Status")
    for manifest in sorted(report.manifests, key=lambda m: m.table_name):
        table.add_row(
            manifest.table_name,
            str(manifest.items_transferred),
            str(manifest.content_length),
            f"{manifest.duration:.2f}s",
            "[green]done[/green]",
        )
    for table_name, error in sorted(report.failures.items()):
        table.add_row(table_name, "-", "-", "-", f"[red]failed: {error}[/red]")
    console.print(table)


@cli_start.command()
@click.option(
    "-t",
    "--table",
    "tables",
    multiple=True,
    help="Table to back up, may be repeated. Every table is backed up when omitted.",
)
@click.option(
    "-x",
    "--exclude",
    "excluded_tables",
    multiple=True,
    help="Table to leave out of the backup, may be repeated.",
)
@click.option("-b", "--bucket", "bucket", default=None, help="Archive bucket name.")
@click.option(
    "--backup-path",
    "backup_path",
    default=None,
    help="Folder inside the bucket. Defaults to DynamoDB-backup-<timestamp>.",
)
@click.option(
    "--read-percentage",
    "read_percentage",
    type=float,
    default=None,
    help="Share of the provisioned read capacity a scan page may use, in (0, 1].",
)
@click.option(
    "--segments",
    "total_segments",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel scan segments per table.",
)
@click.option(
    "--stop-on-failure/--no-stop-on-failure",
    "stop_on_failure",
    default=None,
    help="Abort the whole run as soon as one table fails.",
)
@click.pass_obj
def backup(
    obj: CliContext,
    tables: tuple[str, ...],
    excluded_tables: tuple[str, ...],
    bucket: str | None,
    backup_path: str | None,
    read_percentage: float | None,
    total_segments: int | None,
    stop_on_failure: bool | None,
) -> None:
    """
    Backs up DynamoDB tables to the archive bucket, one JSON Lines object per table.
    """
    settings = obj.settings(
        included_tables=list(tables) or None,
        excluded_tables=list(excluded_tables) or None,
        bucket=bucket,
        backup_path=backup_path,
        read_percentage=read_percentage,
        total_segments=total_segments,
        stop_on_failure=stop_on_failure,
    )
    console.print(f"Backing up to s3://{settings.bucket}", style="bold")
    report = run_async(_backup(settings))
    print_report(report)
    if not report.succeeded:
        raise click.exceptions.Exit(1)
