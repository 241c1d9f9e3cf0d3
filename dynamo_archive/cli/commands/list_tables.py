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
from dynamo_archive.core.backup import select_tables


async def _list_tables(settings: ArchiveSettings) -> list[str]:
    async with transfer_context(settings) as context:
        return select_tables(
            await context.store.list_tables(),
            settings.included_tables,
            settings.excluded_tables,
        )


@cli_start.command(name="list-tables")
@click.pass_obj
def list_tables(obj: CliContext) -> None:
    """
    Lists the tables a backup would include, after the include and exclude filters.
    """
    settings = obj.settings()
    for table_name in run_async(_list_tables(settings)):
        console.print(table_name)
