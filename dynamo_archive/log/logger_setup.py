import sys
from typing import TYPE_CHECKING

from loguru import logger

from dynamo_archive.config.settings import LogLevelType
from dynamo_archive.log.sensitive import sensitive_log_filter

if TYPE_CHECKING:
    import loguru

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[run_id]}</cyan> | "
    "<level>{message}</level>"
)


def setup_logger(level: LogLevelType, sensitive_strings: set[str] | None = None) -> None:
    """Routes every transfer log line to stderr, keeping stdout for command output."""
    logger.remove()
    if sensitive_strings:
        sensitive_log_filter.hide_sensitive_strings(*sensitive_strings)

    log_format = LOG_FORMAT
    if level == "DEBUG":
        log_format += " | {extra}"

    logger.configure(extra={"run_id": "-"}, patcher=exception_deserializer)
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=log_format,
        enqueue=True,
        diagnose=False,  # botocore frames hold credentials
        filter=sensitive_log_filter.create_filter(),
    )


def exception_deserializer(record: "loguru.Record") -> None:
    """
    Replaces the logged exception with a plain Exception.

    botocore errors take several constructor arguments and cannot be pickled
    back by an enqueued sink.
    https://github.com/Delgan/loguru/issues/504
    """
    exception = record["exception"]
    if exception is not None:
        record["exception"] = exception._replace(value=Exception(str(exception.value)))
