# -*- coding: utf-8 -*-

import click

from dynamo_archive.cli.commands.main import CliContext, cli_start, console
from dynamo_archive.exceptions import BaseDynamoArchiveError
from dynamo_archive.utils.prettify import prettify_backup


@cli_start.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_path", type=click.Path(dir_okay=False, writable=True))
@click.pass_obj
def prettify(obj: CliContext, input_path: str, output_path: str) -> None:
    """
    Converts a downloaded JSON Lines backup into a single indented JSON array.

    INPUT_PATH: Backup file to read.
    OUTPUT_PATH: File to write the JSON array to.
    """
    obj.settings()
    try:
        count = prettify_backup(input_path, output_path)
    except BaseDynamoArchiveError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"Wrote {count} records to {output_path}")
