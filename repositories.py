from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional
from decimal import Decimal

from errors import TransactionAlreadyExists
from models import Balance, CommandKind, TransactionRecord
from storage import RWLock


class BalanceRepository(ABC):
    @abstractmethod
    async def get_balance(self, client_id: int) -> Optional[Balance]:
        """Get a client's balance. Returns None if the client has no account yet."""
        pass

    @abstractmethod
    async def get_or_create(self, client_id: int) -> Balance:
        """Get a client's balance, opening a zero balance on first use."""
        pass

    @abstractmethod
    async def update_balance(self, client_id: int, balance: Balance) -> None:
        """Store a client's new balance."""
        pass

    @abstractmethod
    async def apply(self, client_id: int, transition: Callable[[Balance], Balance]) -> Balance:
        """Run ``transition`` on the client's balance and store the result, as one write."""
        pass

    @abstractmethod
    async def snapshot(self) -> Dict[int, Balance]:
        """Copy of all balances in first-touch order."""
        pass

    @abstractmethod
    async def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass


class TransactionHistoryRepository(ABC):
    @abstractmethod
    async def exists(self, tx_id: int) -> bool:
        pass

    @abstractmethod
    async def lookup(self, tx_id: int) -> Optional[TransactionRecord]:
        pass

    @abstractmethod
    async def insert(self, tx_id: int, kind: CommandKind, client_id: int, amount: Decimal) -> TransactionRecord:
        """Register a posted deposit or withdrawal. Raises TransactionAlreadyExists on reuse."""
        pass

    @abstractmethod
    async def mark_disputed(self, tx_id: int) -> None:
        pass

    @abstractmethod
    async def mark_resolved(self, tx_id: int) -> None:
        pass

    @abstractmethod
    async def get_transactions_count(self) -> int:
        pass


class InMemoryBalanceRepository(BalanceRepository):
    def __init__(self):
        self.balances: Dict[int, Balance] = {}
        self.lock = RWLock()

    async def get_balance(self, client_id: int) -> Optional[Balance]:
        async with self.lock.read():
            return self.balances.get(client_id)

    async def get_or_create(self, client_id: int) -> Balance:
        async with self.lock.write():
            return self._get_or_create(client_id)

    async def update_balance(self, client_id: int, balance: Balance) -> None:
        async with self.lock.write():
            self.balances[client_id] = balance

    async def apply(self, client_id: int, transition: Callable[[Balance], Balance]) -> Balance:
        async with self.lock.write():
            new_balance = transition(self._get_or_create(client_id))
            self.balances[client_id] = new_balance
            return new_balance

    async def snapshot(self) -> Dict[int, Balance]:
        async with self.lock.read():
            return dict(self.balances)

    async def get_accounts_count(self) -> int:
        async with self.lock.read():
            return len(self.balances)

    def _get_or_create(self, client_id: int) -> Balance:
        # caller holds the write lock
        if client_id not in self.balances:
            self.balances[client_id] = Balance()
        return self.balances[client_id]


class InMemoryTransactionHistoryRepository(TransactionHistoryRepository):
    def __init__(self):
        self.transactions: Dict[int, TransactionRecord] = {}
        self.lock = RWLock()

    async def exists(self, tx_id: int) -> bool:
        async with self.lock.read():
            return tx_id in self.transactions

    async def lookup(self, tx_id: int) -> Optional[TransactionRecord]:
        # records are frozen, handing one out never exposes mutable state
        async with self.lock.read():
            return self.transactions.get(tx_id)

    async def insert(self, tx_id: int, kind: CommandKind, client_id: int, amount: Decimal) -> TransactionRecord:
        async with self.lock.write():
            if tx_id in self.transactions:
                raise TransactionAlreadyExists(f"Transaction {tx_id} already exists")
            record = TransactionRecord(kind=kind, client_id=client_id, amount=amount)
            self.transactions[tx_id] = record
            return record

    async def mark_disputed(self, tx_id: int) -> None:
        await self._set_in_dispute(tx_id, True)

    async def mark_resolved(self, tx_id: int) -> None:
        await self._set_in_dispute(tx_id, False)

    async def get_transactions_count(self) -> int:
        async with self.lock.read():
            return len(self.transactions)

    async def _set_in_dispute(self, tx_id: int, in_dispute: bool) -> None:
        async with self.lock.write():
            record = self.transactions.get(tx_id)
            if record is None:
                return
            self.transactions[tx_id] = record.model_copy(update={"in_dispute": in_dispute})
