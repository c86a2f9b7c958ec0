import argparse
import asyncio
import csv
import sys
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from config import Settings, get_settings
from ingestion import END_OF_STREAM, produce
from logging_config import configure_logging
from models import Balance, ProcessingStats
from report import render_report
from repositories import (
    BalanceRepository,
    InMemoryBalanceRepository,
    InMemoryTransactionHistoryRepository,
    TransactionHistoryRepository,
)
from services import CommandProcessor

logger = structlog.get_logger()


async def consume(queue: asyncio.Queue, processor: CommandProcessor, producers: int = 1) -> ProcessingStats:
    """Process queued commands strictly one at a time until every producer has finished."""
    finished = 0
    while finished < producers:
        command = await queue.get()
        if command is END_OF_STREAM:
            finished += 1
            continue
        await processor.process(command)
    return processor.stats


async def run_pipeline(
    sources: Sequence[Optional[str]],
    settings: Settings = None,
    balance_repo: BalanceRepository = None,
    history_repo: TransactionHistoryRepository = None,
) -> Tuple[Dict[int, Balance], ProcessingStats]:
    """Read every source concurrently into one queue and apply the commands in arrival order.

    Raises the first source-level error (after the consumer has drained the queue).
    """
    settings = settings or get_settings()
    balance_repo = balance_repo or InMemoryBalanceRepository()
    history_repo = history_repo or InMemoryTransactionHistoryRepository()
    processor = CommandProcessor(
        balance_repo,
        history_repo,
        max_decimal_places=settings.max_decimal_places,
        detailed_logging=settings.detailed_logging,
    )

    queue: asyncio.Queue = asyncio.Queue()
    producer_tasks = [asyncio.create_task(produce(source, queue)) for source in sources]

    stats = await consume(queue, processor, producers=len(producer_tasks))
    results = await asyncio.gather(*producer_tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result

    return await balance_repo.snapshot(), stats


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payments-engine",
        description="Apply a CSV of deposits, withdrawals and disputes and print client balances.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        default=None,
        help="CSV file with columns type, client, tx, amount. Reads stdin when omitted.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    logger.info("Starting payments engine", app=settings.app_name, version=settings.app_version)

    try:
        balances, stats = asyncio.run(run_pipeline([args.input], settings))
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        logger.error("Failed to read input", source=args.input or "<stdin>", error=str(e))
        return 1

    logger.info(
        "Finished processing",
        processed=stats.processed,
        rejected=stats.rejected,
        accounts=len(balances),
    )
    render_report(balances, sys.stdout, sort=settings.sort_output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
