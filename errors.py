"""Ledger domain errors.

Every rejection of a single command is a ``LedgerError``; the ``code`` attribute is
what gets logged as ``error_code``.
"""


class LedgerError(Exception):
    """Base class for command rejections."""

    code = "LEDGER_ERROR"
    message = "Command rejected"

    def __init__(self, detail: str = None):
        self.detail = detail or self.message
        super().__init__(self.detail)


class AmountNotPositive(LedgerError):
    code = "AMOUNT_NOT_POSITIVE"
    message = "Amount must be greater than zero"


class DecimalFormatError(LedgerError):
    code = "DECIMAL_FORMAT_ERROR"
    message = "Amount is not a decimal with at most 4 fractional digits"


class LockedAccount(LedgerError):
    code = "LOCKED_ACCOUNT"
    message = "Account is locked"


class InsufficientFunds(LedgerError):
    code = "INSUFFICIENT_FUNDS"
    message = "Insufficient funds"


class TransactionAlreadyExists(LedgerError):
    code = "TRANSACTION_ALREADY_EXISTS"
    message = "Transaction id already exists"


class TransactionAlreadyInDispute(LedgerError):
    code = "TRANSACTION_ALREADY_IN_DISPUTE"
    message = "Transaction is already in dispute"


class ReferenceTransactionTypeIncorrect(LedgerError):
    code = "REFERENCE_TRANSACTION_TYPE_INCORRECT"
    message = "Referenced transaction is not a deposit"


class ReferenceTransactionNotFound(LedgerError):
    code = "REFERENCE_TRANSACTION_NOT_FOUND"
    message = "Referenced transaction not found"


class ReferenceTransactionIncorrect(LedgerError):
    code = "REFERENCE_TRANSACTION_INCORRECT"
    message = "Referenced transaction belongs to another client"


class ReferenceTransactionStateIncorrect(LedgerError):
    code = "REFERENCE_TRANSACTION_STATE_INCORRECT"
    message = "Referenced transaction is not in dispute"


class UnknownTransactionType(LedgerError):
    code = "UNKNOWN_TRANSACTION_TYPE"
    message = "Unknown transaction type"


class RecordParseError(Exception):
    """Raised when an input row cannot be turned into a command."""
