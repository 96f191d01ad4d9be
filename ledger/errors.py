"""Exceptions raised by the ledger services."""

from __future__ import annotations

from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

REQUIRED_FIELDS_MESSAGE = "Required fields cannot be empty"
GENERIC_STORE_MESSAGE = "The operation could not be saved. Please try again."


class LedgerError(Exception):
    """Base class carrying field errors and the HTTP status to report."""

    status_code = 400

    def __init__(self, errors: Dict[str, str] | str, status_code: Optional[int] = None):
        if isinstance(errors, str):
            errors = {"message": errors}
        super().__init__("; ".join(errors.values()))
        self.errors = errors
        if status_code is not None:
            self.status_code = status_code

    @property
    def message(self) -> str:
        return str(self)


class LedgerValidationError(LedgerError):
    """Raised when the payload provided by the client is invalid."""

    status_code = 400


class LedgerNotFoundError(LedgerError):
    status_code = 404


class LedgerStateError(LedgerError):
    """Raised when an operation does not fit the record's current state."""

    status_code = 409


class LedgerStoreError(LedgerError):
    status_code = 500

    @classmethod
    def from_exception(cls, exc: SQLAlchemyError) -> "LedgerStoreError":
        orig = getattr(exc, "orig", None)
        message = str(orig if orig is not None else exc).lower()
        if "not-null" in message or "not null" in message:
            return cls({"message": REQUIRED_FIELDS_MESSAGE}, status_code=400)
        if isinstance(exc, IntegrityError):
            return cls({"message": GENERIC_STORE_MESSAGE}, status_code=400)
        return cls({"message": GENERIC_STORE_MESSAGE})
