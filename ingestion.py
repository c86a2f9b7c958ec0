"""CSV ingestion: turns rows of ``type, client, tx, amount`` into ``Command`` values."""
import asyncio
import csv
import itertools
import sys
from typing import Dict, Iterable, Iterator, List, Optional, TextIO

import structlog
from pydantic import ValidationError

from errors import RecordParseError, UnknownTransactionType
from models import Command

logger = structlog.get_logger()

FIELD_NAMES = ("type", "client", "tx", "amount")
DEFAULT_FIELD_ORDER = {name: idx for idx, name in enumerate(FIELD_NAMES)}

END_OF_STREAM = None
READ_BATCH_SIZE = 256


def discover_field_order(row: List[str]) -> Optional[Dict[str, int]]:
    """Map column names to indexes if ``row`` is a header, else None.

    Unknown header columns are ignored; ``amount`` may be absent from the header.
    """
    names = [field.strip().lower() for field in row]
    if not {"type", "client", "tx"}.issubset(names):
        return None
    return {name: names.index(name) for name in FIELD_NAMES if name in names}


def parse_record(row: List[str], field_order: Dict[str, int] = DEFAULT_FIELD_ORDER) -> Command:
    """Build a command from a row. Missing trailing columns are allowed.

    Raises RecordParseError for malformed rows and UnknownTransactionType for an
    unrecognised ``type``.
    """
    values = {}
    for name, idx in field_order.items():
        if idx < len(row):
            values[name] = row[idx].strip()

    try:
        return Command.model_validate(values)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in e.errors()
        )
        raise RecordParseError(f"Invalid field(s) {fields} in row {row!r}") from e


def read_commands(stream: Iterable[str]) -> Iterator[Command]:
    """Yield commands from a CSV text stream, logging and skipping bad rows."""
    reader = csv.reader(stream, skipinitialspace=True)
    field_order = DEFAULT_FIELD_ORDER
    first = True

    for row in reader:
        if not row or all(not field.strip() for field in row):
            continue

        if first:
            first = False
            header = discover_field_order(row)
            if header is not None:
                field_order = header
                continue

        try:
            yield parse_record(row, field_order)
        except UnknownTransactionType as e:
            logger.warning(
                "Row rejected",
                row=row,
                line=reader.line_num,
                error_code=e.code,
                detail=e.detail,
            )
        except RecordParseError as e:
            logger.warning("Row skipped", line=reader.line_num, detail=str(e))


def open_source(path: Optional[str]) -> TextIO:
    if path is None or path == "-":
        return sys.stdin
    return open(path, newline="")


def next_batch(commands: Iterator[Command], size: int) -> List[Command]:
    return list(itertools.islice(commands, size))


async def produce(path: Optional[str], queue: asyncio.Queue, batch_size: int = READ_BATCH_SIZE) -> int:
    """Feed commands from ``path`` into ``queue``, then put the end-of-stream marker.

    Opening and reading the file happen in a worker thread, ``batch_size`` commands
    at a time, so the consumer keeps running on the event loop meanwhile.

    The marker is queued even if reading fails, so the consumer always finishes; the
    error is re-raised afterwards.
    """
    count = 0
    try:
        stream = await asyncio.to_thread(open_source, path)
        try:
            commands = read_commands(stream)
            while True:
                batch = await asyncio.to_thread(next_batch, commands, batch_size)
                if not batch:
                    break
                for command in batch:
                    queue.put_nowait(command)
                count += len(batch)
        finally:
            if stream is not sys.stdin:
                stream.close()
    finally:
        queue.put_nowait(END_OF_STREAM)

    logger.info("Input exhausted", source=path or "<stdin>", commands=count)
    return count
