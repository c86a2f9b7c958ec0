from decimal import Decimal
from typing import Optional
import structlog

from errors import (
    LedgerError,
    ReferenceTransactionIncorrect,
    ReferenceTransactionNotFound,
    ReferenceTransactionStateIncorrect,
    ReferenceTransactionTypeIncorrect,
    TransactionAlreadyExists,
    TransactionAlreadyInDispute,
    UnknownTransactionType,
)
from models import (
    Balance,
    Command,
    CommandKind,
    DEFAULT_MAX_DECIMAL_PLACES,
    ProcessingStats,
    TransactionRecord,
    check_amount,
    to_amount,
)
from repositories import BalanceRepository, TransactionHistoryRepository

logger = structlog.get_logger()


class CommandProcessor:
    """Applies commands to the ledger one at a time.

    Each command goes through three phases: referential validation against the
    transaction history, amount resolution, then apply-and-commit. Any phase may raise
    a ``LedgerError``; nothing is written unless the balance transition succeeds.
    """

    def __init__(
        self,
        balance_repo: BalanceRepository,
        history_repo: TransactionHistoryRepository,
        max_decimal_places: int = DEFAULT_MAX_DECIMAL_PLACES,
        detailed_logging: bool = True,
    ):
        self.balance_repo = balance_repo
        self.history_repo = history_repo
        self.max_decimal_places = max_decimal_places
        self.detailed_logging = detailed_logging
        self.stats = ProcessingStats()

    async def process(self, command: Command) -> bool:
        """Process a command, logging and counting a rejection instead of raising it."""
        try:
            balance = await self.execute(command)
        except LedgerError as e:
            self.stats.rejected += 1
            logger.warning(
                "Command rejected",
                type=command.kind.value,
                client_id=command.client_id,
                tx_id=command.tx_id,
                amount=command.amount,
                error_code=e.code,
                detail=e.detail,
            )
            return False

        self.stats.processed += 1
        if self.detailed_logging:
            logger.debug(
                "Command applied",
                type=command.kind.value,
                client_id=command.client_id,
                tx_id=command.tx_id,
                available=str(balance.available),
                held=str(balance.held),
                locked=balance.locked,
            )
        return True

    async def execute(self, command: Command) -> Balance:
        """Apply a command and return the client's new balance. Raises LedgerError."""
        record = await self._validate_references(command)
        amount = self._resolve_amount(command, record)
        return await self._apply_and_commit(command, amount)

    async def _validate_references(self, command: Command) -> Optional[TransactionRecord]:
        kind = command.kind

        if kind in (CommandKind.deposit, CommandKind.withdrawal):
            if await self.history_repo.exists(command.tx_id):
                raise TransactionAlreadyExists(
                    f"Transaction {command.tx_id} already exists"
                )
            return None

        if kind not in (CommandKind.dispute, CommandKind.resolve, CommandKind.chargeback):
            raise UnknownTransactionType(f"Unknown transaction type: {kind!r}")

        record = await self.history_repo.lookup(command.tx_id)
        if record is None:
            raise ReferenceTransactionNotFound(
                f"Transaction {command.tx_id} not found"
            )

        if kind == CommandKind.dispute:
            if record.kind != CommandKind.deposit:
                raise ReferenceTransactionTypeIncorrect(
                    f"Transaction {command.tx_id} is a {record.kind.value}"
                )
            if record.client_id != command.client_id:
                raise ReferenceTransactionIncorrect(
                    f"Transaction {command.tx_id} belongs to client {record.client_id}"
                )
            if record.in_dispute:
                raise TransactionAlreadyInDispute(
                    f"Transaction {command.tx_id} is already in dispute"
                )
        elif not record.in_dispute:
            raise ReferenceTransactionStateIncorrect(
                f"Transaction {command.tx_id} is not in dispute"
            )

        return record

    def _resolve_amount(self, command: Command, record: Optional[TransactionRecord]) -> Decimal:
        if command.kind.carries_amount:
            if command.amount is None:
                # nothing to apply without an amount
                raise UnknownTransactionType(
                    f"{command.kind.value} {command.tx_id} has no amount"
                )
            amount = to_amount(command.amount, self.max_decimal_places)
        else:
            amount = record.amount

        return check_amount(amount)

    async def _apply_and_commit(self, command: Command, amount: Decimal) -> Balance:
        balance = await self.balance_repo.apply(
            command.client_id,
            lambda current: current.apply(command.kind, amount),
        )

        if command.kind.carries_amount:
            await self.history_repo.insert(
                command.tx_id, command.kind, command.client_id, amount
            )
        elif command.kind == CommandKind.dispute:
            await self.history_repo.mark_disputed(command.tx_id)
        else:
            await self.history_repo.mark_resolved(command.tx_id)

        return balance
