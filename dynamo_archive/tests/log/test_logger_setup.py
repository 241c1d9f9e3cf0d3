import io
import sys
from typing import Any, Generator

import pytest
from loguru import logger

from dynamo_archive.log.logger_setup import exception_deserializer, setup_logger
from dynamo_archive.log.sensitive import SensitiveLogFilter, sensitive_log_filter


@pytest.fixture(autouse=True)
def restore_logger() -> Generator[None, None, None]:
    original_patterns = SensitiveLogFilter.compiled_patterns.copy()
    yield
    SensitiveLogFilter.compiled_patterns = original_patterns
    logger.remove()
    logger.configure(patcher=lambda record: None)


def test_setup_logger_registers_configured_secrets() -> None:
    setup_logger("INFO", {"super-secret-value"})

    assert (
        sensitive_log_filter.mask_string("token super-secret-value", full_hide=True)
        == "token [REDACTED]"
    )


def test_exception_deserializer_replaces_the_exception_value() -> None:
    class CustomError(Exception):
        def __init__(self, table: str, attempts: int) -> None:
            super().__init__(f"{table} failed after {attempts} attempts")

    records: list[Any] = []
    handler_id = logger.add(lambda message: records.append(message.record))
    logger.configure(patcher=exception_deserializer)
    try:
        try:
            raise CustomError("users", 3)
        except CustomError:
            logger.exception("batch failed")
    finally:
        logger.remove(handler_id)

    value = records[0]["exception"].value
    assert type(value) is Exception
    assert str(value) == "users failed after 3 attempts"


def test_log_lines_carry_the_run_id() -> None:
    setup_logger("INFO")
    lines: list[str] = []
    logger.add(lambda message: lines.append(str(message)), format="{extra[run_id]} {message}")

    logger.info("outside a run")
    with logger.contextualize(run_id="abc123"):
        logger.info("inside a run")
    logger.complete()

    assert lines == ["- outside a run\n", "abc123 inside a run\n"]


def test_logs_go_to_stderr_so_stdout_stays_for_command_output(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    stderr, stdout = io.StringIO(), io.StringIO()
    monkeypatch.setattr(sys, "stderr", stderr)
    monkeypatch.setattr(sys, "stdout", stdout)

    setup_logger("WARNING")
    logger.info("scanning users")
    logger.warning("throttled on users")
    # removing an enqueued sink waits for its queue to drain
    logger.remove()

    assert "throttled on users" in stderr.getvalue()
    assert "scanning users" not in stderr.getvalue()
    assert stdout.getvalue() == ""
