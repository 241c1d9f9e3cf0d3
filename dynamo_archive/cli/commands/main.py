# -*- coding: utf-8 -*-
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Coroutine, TypeVar

import click
import pydantic
from loguru import logger
from rich.console import Console

from dynamo_archive.clients.dynamodb import DynamoDBTableStore
from dynamo_archive.clients.s3 import S3ObjectArchive
from dynamo_archive.clients.session import open_clients
from dynamo_archive.config.settings import ArchiveSettings, LogLevelType, load_settings
from dynamo_archive.core.events import LoggingObserver, TransferEvents
from dynamo_archive.exceptions import BaseDynamoArchiveError, ValidationError
from dynamo_archive.log.logger_setup import setup_logger
from dynamo_archive.utils.misc import generate_run_id

console = Console()

T = TypeVar("T")


@dataclass
class CliContext:
    config_file: str | None = None
    log_level: LogLevelType | None = None

    def settings(self, **overrides: Any) -> ArchiveSettings:
        """Loads the settings with the command line overrides and sets up logging."""
        try:
            settings = load_settings(
                self.config_file, log_level=self.log_level, **overrides
            )
        except pydantic.ValidationError as e:
            error = ValidationError(f"Invalid configuration: {e}")
            raise click.ClickException(str(error)) from error
        setup_logger(settings.log_level, settings.get_sensitive_fields_data())
        return settings


@dataclass
class TransferContext:
    store: DynamoDBTableStore
    archive: S3ObjectArchive
    events: TransferEvents


@asynccontextmanager
async def transfer_context(settings: ArchiveSettings) -> AsyncIterator[TransferContext]:
    events = TransferEvents()
    LoggingObserver().attach(events)
    async with open_clients(settings) as (dynamodb, s3):
        yield TransferContext(
            store=DynamoDBTableStore(dynamodb),
            archive=S3ObjectArchive(s3, part_size=settings.upload_part_size),
            events=events,
        )


def run_async(coroutine: Coroutine[Any, Any, T]) -> T:
    """Runs a command's coroutine, turning transfer errors into a clean CLI failure."""
    with logger.contextualize(run_id=generate_run_id()):
        try:
            return asyncio.run(coroutine)
        except BaseDynamoArchiveError as e:
            raise click.ClickException(str(e)) from e


@click.group
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a YAML config file. Defaults to ./config.yaml when it exists.",
)
@click.option(
    "-l",
    "--log-level",
    "log_level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="""Set the logging level.
            Supported levels are DEBUG, INFO, WARNING, ERROR,
            and CRITICAL. If not specified, the configured level
            is used.""",
)
@click.pass_context
def cli_start(
    ctx: click.Context, config_file: str | None, log_level: LogLevelType | None
) -> None:
    # dynamo-archive root command
    ctx.obj = CliContext(config_file=config_file, log_level=log_level)
