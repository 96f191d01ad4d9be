"""Running balance per staff member.

Every staff member has at most one :class:`~models.StaffBalance` row, keyed
by short name. Credits (cash advanced to the staff member) raise the balance
and expenses lower it. Updates are applied as in-database increments so two
settlements for the same person can never overwrite each other.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from flask import current_app
from sqlalchemy import update

from extensions import db
from models import Expense, Staff, StaffBalance
from .common import ZERO, commit, positive_amount, sort_newest_first, strip_or_none, upsert
from .errors import LedgerError, LedgerNotFoundError, LedgerValidationError

LATEST_TRANSACTIONS = 3


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise LedgerValidationError({"date": "Invalid date. Use YYYY-MM-DD."}) from exc
    raise LedgerValidationError({"date": "Date is required."})


def get_staff_by_short_name(short_name: str) -> Optional[Staff]:
    return Staff.query.filter_by(short_name=short_name).first()


def _require_staff(short_name: Any) -> Staff:
    short_name = strip_or_none(short_name)
    if not short_name:
        raise LedgerValidationError({"staff_short_name": "Staff short name is required."})
    staff = get_staff_by_short_name(short_name)
    if staff is None:
        raise LedgerNotFoundError({"staff_short_name": f"Staff with short name {short_name} not found."})
    return staff


def _apply(staff_short_name: Any, amount: Any, reason: Any, when: Any, *, sign: int) -> StaffBalance:
    """Add ``sign * |amount|`` to the staff balance without committing."""

    if not strip_or_none(reason):
        raise LedgerValidationError({"reason": "Reason is required."})
    value = positive_amount(amount)
    modified = _as_datetime(when)
    staff = _require_staff(staff_short_name)

    balance = upsert(
        StaffBalance,
        {"staff_short_name": staff.short_name},
        {
            "staff_full_name": staff.full_name,
            "balance": value * sign,
            "date_modified": modified,
        },
        increments=("balance",),
    )
    current_app.logger.info(
        "Balance %s for %s by %s (%s)",
        "credited" if sign > 0 else "debited",
        staff.short_name,
        value,
        reason,
    )
    return balance


def credit(staff_short_name: Any, amount: Any, reason: Any, when: Any) -> StaffBalance:
    """Raise the balance, e.g. for an advance paid to the staff member."""

    balance = _apply(staff_short_name, amount, reason, when, sign=1)
    commit("credit staff balance")
    return balance


def debit(staff_short_name: Any, amount: Any, reason: Any, when: Any) -> StaffBalance:
    balance = _apply(staff_short_name, amount, reason, when, sign=-1)
    commit("debit staff balance")
    return balance


def set_balance(staff_short_name: Any, new_balance: Any, reason: Any, when: Any) -> StaffBalance:
    """Overwrite the balance with ``|new_balance|`` (manual correction)."""

    if not strip_or_none(reason):
        raise LedgerValidationError({"reason": "Reason is required."})
    if new_balance is None or (isinstance(new_balance, str) and not new_balance.strip()):
        raise LedgerValidationError({"balance": "New balance is required."})
    try:
        value = abs(Decimal(str(new_balance)))
    except ArithmeticError as exc:
        raise LedgerValidationError({"balance": "Must be a number."}) from exc
    staff = _require_staff(staff_short_name)
    balance = upsert(
        StaffBalance,
        {"staff_short_name": staff.short_name},
        {
            "staff_full_name": staff.full_name,
            "balance": value,
            "date_modified": _as_datetime(when),
        },
    )
    current_app.logger.info("Balance for %s set to %s (%s)", staff.short_name, value, reason)
    commit("set staff balance")
    return balance


def get_balance(staff_short_name: Any) -> dict[str, Any]:
    """Return the balance plus the full expense history, newest first."""

    staff = _require_staff(staff_short_name)
    row = StaffBalance.query.filter_by(staff_short_name=staff.short_name).first()
    transactions = sort_newest_first(Expense.query.filter_by(staff_short_name=staff.short_name).all())
    return {
        "staff_short_name": staff.short_name,
        "staff_full_name": staff.full_name,
        "balance": row.balance if row else ZERO,
        "date_modified": row.date_modified if row else None,
        "transactions": transactions,
    }


def get_all_balances() -> list[dict[str, Any]]:
    """Every staff member with balance, expense count and latest expenses."""

    balances = {row.staff_short_name: row for row in StaffBalance.query.all()}
    expenses_by_staff: dict[str, list[Expense]] = {}
    for expense in Expense.query.all():
        expenses_by_staff.setdefault(expense.staff_short_name, []).append(expense)

    results = []
    for staff in Staff.query.order_by(Staff.full_name.asc()).all():
        row = balances.get(staff.short_name)
        expenses = sort_newest_first(expenses_by_staff.get(staff.short_name, []))
        results.append(
            {
                "staff": staff,
                "balance": row.balance if row else ZERO,
                "last_modified": row.date_modified if row else None,
                "expense_count": len(expenses),
                "latest_transactions": expenses[:LATEST_TRANSACTIONS],
            }
        )
    return results


def settle_trip_expenses(trip_id: int) -> list[Expense]:
    """Apply every unsettled expense of a trip to the staff balance once.

    The ``balance_updated`` flag is flipped with a conditional update first;
    only the caller whose update claimed the row debits the balance, so a
    repeated or concurrent settlement is a no-op.
    """

    if not trip_id:
        raise LedgerValidationError({"trip_id": "Trip ID is required."})

    expenses = Expense.query.filter_by(trip_id=trip_id).order_by(Expense.id.asc()).all()
    settled: list[Expense] = []
    for expense in expenses:
        if expense.balance_updated:
            current_app.logger.debug("Expense %s already settled, skipping", expense.id)
            continue
        if not expense.staff_short_name:
            raise LedgerValidationError({"staff_short_name": f"Expense {expense.id} has no staff short name."})

        claimed = db.session.execute(
            update(Expense)
            .where(Expense.id == expense.id, Expense.balance_updated.is_(False))
            .values(balance_updated=True, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if not claimed.rowcount:
            db.session.rollback()
            current_app.logger.debug("Expense %s settled concurrently, skipping", expense.id)
            continue

        try:
            _apply(
                expense.staff_short_name,
                expense.amount,
                expense.reason or current_app.config.get("TRIP_EXPENSE_REASON", "Trip expenses"),
                expense.created_date or datetime.utcnow(),
                sign=-1,
            )
        except LedgerError:
            db.session.rollback()
            raise
        commit("settle trip expense")
        settled.append(expense)

    if settled:
        current_app.logger.info("Settled %d expense(s) for trip %s", len(settled), trip_id)
    return settled
