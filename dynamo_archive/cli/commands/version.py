# -*- coding: utf-8 -*-

import click

from dynamo_archive import __version__
from dynamo_archive.cli.commands.main import cli_start, console


@cli_start.command()
@click.option(
    "-s",
    "--short",
    "short",
    default=False,
    is_flag=True,
    required=False,
    help="Display only the short version number.",
)
def version(short: bool) -> None:
    """
    Displays the version of the dynamo-archive package.
    """
    if short:
        console.print(__version__)
    else:
        console.print(f"dynamo-archive version: {__version__}")
