"""Shared helpers for the ledger services: parsing, commits and upserts."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

from flask import current_app
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from .errors import LedgerNotFoundError, LedgerStoreError, LedgerValidationError

ZERO = Decimal("0")
WHOLE = Decimal("1")


def strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
    else:
        value = str(value).strip()
    return value or None


def parse_decimal(value: Any, field: str, errors: Dict[str, str], *, required: bool = False) -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors[field] = "This field is required."
        return None
    if isinstance(value, bool):
        errors[field] = "Must be a number."
        return None
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        errors[field] = "Must be a number."
        return None
    if not parsed.is_finite():
        errors[field] = "Must be a number."
        return None
    return parsed


def parse_date(value: Any, field: str, errors: Dict[str, str], *, required: bool = False) -> Optional[date]:
    if value in (None, ""):
        if required:
            errors[field] = "This field is required."
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        errors[field] = "Invalid date. Use YYYY-MM-DD."
        return None


def parse_int(value: Any, field: str, errors: Dict[str, str], *, required: bool = False) -> Optional[int]:
    if value in (None, ""):
        if required:
            errors[field] = "This field is required."
        return None
    if isinstance(value, bool):
        errors[field] = "Invalid identifier."
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        errors[field] = "Invalid identifier."
        return None


def whole_amount(value: Decimal) -> Decimal:
    """Round to whole currency units (VND has no minor unit)."""

    return Decimal(value).quantize(WHOLE, rounding=ROUND_HALF_UP)


def positive_amount(value: Any, field: str = "amount") -> Decimal:
    """Return ``|value|`` or raise when it is missing or zero."""

    errors: Dict[str, str] = {}
    parsed = parse_decimal(value, field, errors, required=True)
    if errors:
        raise LedgerValidationError(errors)
    parsed = abs(parsed)
    if parsed == ZERO:
        raise LedgerValidationError({field: "Amount must be greater than 0."})
    return parsed


def get_or_raise(model, record_id: Any, label: str, field: str = "id"):
    errors: Dict[str, str] = {}
    parsed = parse_int(record_id, field, errors, required=True)
    if errors:
        raise LedgerValidationError(errors)
    record = db.session.get(model, parsed)
    if record is None:
        raise LedgerNotFoundError({field: f"{label} not found."})
    return record


def commit(action: str) -> None:
    """Commit the session, mapping store failures to ``LedgerStoreError``."""

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", action)
        raise LedgerStoreError.from_exception(exc) from exc


def _dialect_insert(model):
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model.__table__)
    if dialect == "sqlite":
        return sqlite.insert(model.__table__)
    return None


def upsert(
    model,
    keys: Dict[str, Any],
    values: Dict[str, Any],
    *,
    increments: Iterable[str] = (),
):
    """Insert a row or update it on conflict with ``keys``.

    Columns named in ``increments`` are added to the stored value inside the
    database (``col = col + excluded.col``) instead of being replaced, so
    concurrent writers never lose each other's updates.
    """

    increments = set(increments)
    table = model.__table__
    now = datetime.utcnow()
    row = {**keys, **values}
    if "updated_at" in table.c:
        row["updated_at"] = now

    try:
        return _upsert(model, keys, row, increments)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to upsert %s", table.name)
        raise LedgerStoreError.from_exception(exc) from exc


def _upsert(model, keys: Dict[str, Any], row: Dict[str, Any], increments: set[str]):
    table = model.__table__
    stmt = _dialect_insert(model)
    if stmt is not None:
        stmt = stmt.values(**row)
        update_set = {}
        for column in row:
            if column in keys:
                continue
            if column in increments:
                update_set[column] = table.c[column] + stmt.excluded[column]
            else:
                update_set[column] = stmt.excluded[column]
        stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=update_set)
        db.session.execute(stmt)
    else:  # pragma: no cover - only reached on databases without ON CONFLICT
        query = model.query.filter_by(**keys).with_for_update()
        existing = query.first()
        if existing is None:
            db.session.add(model(**row))
        else:
            for column, value in row.items():
                if column in increments:
                    value = getattr(existing, column) + value
                setattr(existing, column, value)
        db.session.flush()

    stmt = select(model).filter_by(**keys).execution_options(populate_existing=True)
    return db.session.execute(stmt).scalar_one()


def sort_newest_first(expenses: list) -> list:
    """Sort expenses by ``created_date`` descending with undated rows last."""

    dated = [expense for expense in expenses if expense.created_date is not None]
    undated = [expense for expense in expenses if expense.created_date is None]
    dated.sort(key=lambda expense: (expense.created_date, expense.id), reverse=True)
    return dated + undated
