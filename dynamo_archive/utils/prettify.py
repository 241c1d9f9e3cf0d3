import json
from pathlib import Path
from typing import Any, IO, Iterator

from loguru import logger

from dynamo_archive.exceptions import CodecError


def iter_backup_records(lines: IO[str]) -> Iterator[dict[str, Any]]:
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError as e:
            raise CodecError(f"Line {line_number} is not valid JSON: {e}") from e


def prettify_backup(input_path: str | Path, output_path: str | Path, indent: int = 2) -> int:
    """
    Rewrites a JSON Lines backup as one indented JSON array.

    Records are copied one at a time, so the input never has to fit in memory.
    Returns the number of records written.
    """
    count = 0
    with open(input_path, encoding="utf-8") as source, open(
        output_path, "w", encoding="utf-8"
    ) as target:
        target.write("[")
        for record in iter_backup_records(source):
            target.write(",\n" if count else "\n")
            body = json.dumps(record, indent=indent, ensure_ascii=False)
            target.write(_indent(body, indent))
            count += 1
        target.write("\n]\n" if count else "]\n")
    logger.info(f"Wrote {count} records from {input_path} to {output_path}")
    return count


def _indent(body: str, indent: int) -> str:
    pad = " " * indent
    return "\n".join(pad + line for line in body.splitlines())
