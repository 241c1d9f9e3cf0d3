# -*- coding: utf-8 -*-

import click

from dynamo_archive.cli.commands.main import (
    CliContext,
    cli_start,
    console,
    run_async,
    transfer_context,
)
from dynamo_archive.config.settings import ArchiveSettings
from dynamo_archive.core.models import TransferManifest
from dynamo_archive.core.restore import DynamoRestore


async def _restore(
    settings: ArchiveSettings, source: str, table_name: str
) -> TransferManifest:
    async with transfer_context(settings) as context:
        return await DynamoRestore(
            settings, context.store, context.archive, context.events
        ).restore(source, table_name)


@cli_start.command()
@click.argument("source", type=str)
@click.option(
    "-t", "--table", "table_name", required=True, help="Destination table name."
)
@click.option(
    "--overwrite/--no-overwrite",
    "overwrite",
    default=None,
    help="Load into the destination table even if it already exists.",
)
@click.option(
    "--concurrency",
    "max_concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of batch writes in flight.",
)
@click.option(
    "--min-concurrency",
    "min_concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of batch writes in flight the writer never backs off below.",
)
@click.option(
    "--write-capacity",
    "restore_write_capacity",
    type=click.IntRange(min=1),
    default=None,
    help="Write capacity units held on the table during the load.",
)
@click.option(
    "--stop-on-failure/--no-stop-on-failure",
    "stop_on_failure",
    default=None,
    help="Fail the restore instead of dropping a batch that keeps failing.",
)
@click.pass_obj
def restore(
    obj: CliContext,
    source: str,
    table_name: str,
    overwrite: bool | None,
    max_concurrency: int | None,
    min_concurrency: int | None,
    restore_write_capacity: int | None,
    stop_on_failure: bool | None,
) -> None:
    """
    Restores a backup into a DynamoDB table.

    SOURCE: s3 URI of the backup data object, ie s3://mybucket/folder/mytable.json
    """
    settings = obj.settings(
        overwrite=overwrite,
        max_concurrency=max_concurrency,
        min_concurrency=min_concurrency,
        restore_write_capacity=restore_write_capacity,
        stop_on_failure=stop_on_failure,
    )
    console.print(f"Restoring {source} into {table_name}", style="bold")
    manifest = run_async(_restore(settings, source, table_name))
    console.print(
        f"Restored [bold]{manifest.items_transferred}[/bold] items into {table_name} "
        f"in {manifest.duration:.2f}s"
    )
    if manifest.items_dropped:
        console.print(
            f"[yellow]{manifest.items_dropped} items were dropped after repeated failures[/yellow]"
        )
        raise click.exceptions.Exit(1)
