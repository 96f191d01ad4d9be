"""Trip settlement and the staff, wage and customer ledgers."""

from . import balance, debts, expenses, trips, wages
from .errors import (
    LedgerError,
    LedgerNotFoundError,
    LedgerStateError,
    LedgerStoreError,
    LedgerValidationError,
)

__all__ = [
    "balance",
    "debts",
    "expenses",
    "trips",
    "wages",
    "LedgerError",
    "LedgerNotFoundError",
    "LedgerStateError",
    "LedgerStoreError",
    "LedgerValidationError",
]
