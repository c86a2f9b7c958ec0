from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from typing import Optional
from decimal import Context, Decimal, Inexact, InvalidOperation, Overflow
import re

from errors import (
    AmountNotPositive,
    DecimalFormatError,
    InsufficientFunds,
    LockedAccount,
    UnknownTransactionType,
)

ZERO_AMOUNT = Decimal(0)
MAX_CLIENT_ID = 65535
MAX_TX_ID = 4294967295
DEFAULT_MAX_DECIMAL_PLACES = 4
MAX_AMOUNT_DIGITS = 32

PLAIN_DECIMAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")

# balances never round: an inexact sum raises instead of losing digits
LEDGER_CONTEXT = Context(prec=40, traps=[InvalidOperation, Inexact, Overflow])


class CommandKind(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"

    @property
    def carries_amount(self) -> bool:
        return self in (CommandKind.deposit, CommandKind.withdrawal)


class Command(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: CommandKind = Field(..., alias="type", description="Operation to apply")
    client_id: int = Field(..., alias="client", ge=0, le=MAX_CLIENT_ID)
    tx_id: int = Field(..., alias="tx", ge=0, le=MAX_TX_ID)
    amount: Optional[str] = Field(
        None,
        description="Raw decimal literal, only read for deposits and withdrawals",
    )

    @field_validator("kind", mode="before")
    @classmethod
    def validate_kind(cls, v):
        if isinstance(v, CommandKind):
            return v
        try:
            return CommandKind(str(v).strip())
        except ValueError:
            raise UnknownTransactionType(f"Unknown transaction type: {v!r}")

    @field_validator("amount", mode="before")
    @classmethod
    def blank_amount_is_missing(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


def to_amount(literal: str, max_places: int = DEFAULT_MAX_DECIMAL_PLACES) -> Decimal:
    """Parse a decimal literal, rejecting more than ``max_places`` fractional digits.

    The check is on the literal's exponent, so ``"1.00000"`` is rejected even though
    its value fits. Only plain literals are accepted (no exponent, no underscores),
    with at most ``MAX_AMOUNT_DIGITS`` significant digits.
    """
    if not isinstance(literal, str) or not PLAIN_DECIMAL.match(literal.strip()):
        raise DecimalFormatError(f"Invalid decimal literal: {literal!r}")
    amount = Decimal(literal.strip())
    digits, exponent = amount.as_tuple().digits, amount.as_tuple().exponent
    if -exponent > max_places:
        raise DecimalFormatError(
            f"Amount {literal!r} has more than {max_places} fractional digits"
        )
    if len(digits) > MAX_AMOUNT_DIGITS:
        raise DecimalFormatError(
            f"Amount {literal!r} has more than {MAX_AMOUNT_DIGITS} digits"
        )
    return amount


def _exact(operation, a: Decimal, b: Decimal) -> Decimal:
    try:
        return operation(a, b)
    except (Inexact, Overflow):
        raise DecimalFormatError(f"{a} and {b} cannot be combined without rounding")


def add(a: Decimal, b: Decimal) -> Decimal:
    return _exact(LEDGER_CONTEXT.add, a, b)


def subtract(a: Decimal, b: Decimal) -> Decimal:
    return _exact(LEDGER_CONTEXT.subtract, a, b)


def check_amount(amount: Decimal) -> Decimal:
    if amount <= ZERO_AMOUNT:
        raise AmountNotPositive(f"Amount {amount} is not positive")
    return amount


class Balance(BaseModel):
    """A client's funds. Transitions return a new ``Balance``; nothing mutates in place."""

    model_config = ConfigDict(frozen=True)

    available: Decimal = ZERO_AMOUNT
    held: Decimal = ZERO_AMOUNT
    locked: bool = False

    @property
    def total(self) -> Decimal:
        return add(self.available, self.held)

    def _ensure_unlocked(self) -> None:
        if self.locked:
            raise LockedAccount()

    def deposit(self, amount: Decimal) -> "Balance":
        self._ensure_unlocked()
        return self.model_copy(update={"available": add(self.available, amount)})

    def withdrawal(self, amount: Decimal) -> "Balance":
        self._ensure_unlocked()
        if self.available < amount:
            raise InsufficientFunds(
                f"Available {self.available} is less than {amount}"
            )
        return self.model_copy(update={"available": subtract(self.available, amount)})

    def dispute(self, amount: Decimal) -> "Balance":
        self._ensure_unlocked()
        if self.available < amount:
            raise InsufficientFunds(
                f"Available {self.available} is less than {amount}"
            )
        return self.model_copy(update={
            "available": subtract(self.available, amount),
            "held": add(self.held, amount),
        })

    def resolve(self, amount: Decimal) -> "Balance":
        self._ensure_unlocked()
        if self.held < amount:
            raise InsufficientFunds(f"Held {self.held} is less than {amount}")
        return self.model_copy(update={
            "available": add(self.available, amount),
            "held": subtract(self.held, amount),
        })

    def chargeback(self, amount: Decimal) -> "Balance":
        self._ensure_unlocked()
        if self.held < amount:
            raise InsufficientFunds(f"Held {self.held} is less than {amount}")
        return self.model_copy(update={
            "held": subtract(self.held, amount),
            "locked": True,
        })

    def apply(self, kind: CommandKind, amount: Decimal) -> "Balance":
        transitions = {
            CommandKind.deposit: self.deposit,
            CommandKind.withdrawal: self.withdrawal,
            CommandKind.dispute: self.dispute,
            CommandKind.resolve: self.resolve,
            CommandKind.chargeback: self.chargeback,
        }
        try:
            transition = transitions[kind]
        except KeyError:
            raise UnknownTransactionType(f"Unknown transaction type: {kind!r}")
        return transition(amount)


class TransactionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CommandKind = Field(..., description="deposit or withdrawal")
    client_id: int = Field(..., description="Client that posted the transaction")
    amount: Decimal = Field(..., gt=0)
    in_dispute: bool = False


class ProcessingStats(BaseModel):
    processed: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.rejected
