"""Expense records for staff members.

Trip expenses are recorded *deferred*: the row exists as soon as the trip is
entered but only reaches the staff balance when the trip is approved (see
:func:`ledger.balance.settle_trip_expenses`). Ad hoc expenses are applied to
the balance immediately.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from flask import current_app

from extensions import db
from models import Expense, Staff, Trip
from . import balance as balance_ledger
from .common import (
    commit,
    get_or_raise,
    parse_date,
    positive_amount,
    sort_newest_first,
    strip_or_none,
)
from .errors import LedgerError, LedgerStateError, LedgerValidationError

LATEST_EXPENSES = 3


def _validated_fields(reason: Any, created_date: Any, staff_id: Any) -> tuple[str, date, Staff]:
    errors: Dict[str, str] = {}
    reason_text = strip_or_none(reason)
    if not reason_text:
        errors["reason"] = "Reason is required."
    parsed_date = parse_date(created_date, "created_date", errors, required=True)
    if staff_id in (None, ""):
        errors["staff_id"] = "Staff ID is required."
    if errors:
        raise LedgerValidationError(errors)
    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    return reason_text, parsed_date, staff


def _new_expense(amount, reason, created_date, staff_id, trip_id, description, *, settled: bool) -> Expense:
    value = positive_amount(amount)
    reason_text, parsed_date, staff = _validated_fields(reason, created_date, staff_id)
    if trip_id is not None:
        get_or_raise(Trip, trip_id, "Trip", field="trip_id")

    expense = Expense(
        amount=value,
        reason=reason_text,
        description=strip_or_none(description),
        staff_id=staff.id,
        staff_short_name=staff.short_name,
        staff_full_name=staff.full_name,
        trip_id=trip_id,
        created_date=parsed_date,
        balance_updated=settled,
    )
    db.session.add(expense)
    return expense


def create_deferred(
    amount: Any,
    staff_id: Any,
    trip_id: Any,
    reason: Any,
    created_date: Any,
    description: Optional[str] = None,
) -> Expense:
    """Record a trip expense that does not touch the balance yet."""

    if trip_id in (None, ""):
        raise LedgerValidationError({"trip_id": "Trip ID is required for deferred expenses."})
    expense = _new_expense(amount, reason, created_date, staff_id, trip_id, description, settled=False)
    commit("create deferred expense")
    current_app.logger.info("Deferred expense %s recorded for trip %s", expense.id, trip_id)
    return expense


def create_immediate(
    amount: Any,
    staff_id: Any,
    reason: Any,
    created_date: Any,
    description: Optional[str] = None,
    trip_id: Any = None,
) -> Expense:
    """Record an expense and debit the staff balance straight away."""

    expense = _new_expense(amount, reason, created_date, staff_id, trip_id, description, settled=True)
    try:
        balance_ledger._apply(expense.staff_short_name, expense.amount, expense.reason, expense.created_date, sign=-1)
    except LedgerError:
        db.session.rollback()
        raise
    commit("create expense")
    return expense


def update_amount_and_settle(
    expense_id: Any,
    new_amount: Any,
    created_date: Any,
    reason: Any,
    staff_id: Any,
    trip_id: Any = None,
    description: Optional[str] = None,
) -> Expense:
    """Rewrite an expense and move the balance by the change in amount.

    Only expenses already applied to the balance produce a ledger entry; a
    deferred expense is simply rewritten and settles later at its new amount.
    """

    expense = get_or_raise(Expense, expense_id, "Expense")
    value = positive_amount(new_amount)
    reason_text, parsed_date, staff = _validated_fields(reason, created_date, staff_id)
    trip = get_or_raise(Trip, trip_id, "Trip", field="trip_id") if trip_id not in (None, "") else None

    previous_amount = expense.amount or 0
    previous_short_name = expense.staff_short_name
    delta = value - previous_amount

    expense.amount = value
    expense.reason = reason_text
    expense.created_date = parsed_date
    expense.staff_id = staff.id
    expense.staff_short_name = staff.short_name
    expense.staff_full_name = staff.full_name
    if trip is not None:
        expense.trip_id = trip.id
    if description is not None:
        expense.description = strip_or_none(description)

    try:
        if expense.balance_updated:
            if previous_short_name != staff.short_name:
                # Moving a settled expense to another person: give the old
                # amount back to the previous holder and charge the new one.
                balance_ledger._apply(previous_short_name, previous_amount, reason_text, parsed_date, sign=1)
                balance_ledger._apply(staff.short_name, value, reason_text, parsed_date, sign=-1)
            elif delta > 0:
                balance_ledger._apply(staff.short_name, abs(delta), reason_text, parsed_date, sign=-1)
            elif delta < 0:
                balance_ledger._apply(staff.short_name, abs(delta), reason_text, parsed_date, sign=1)
    except LedgerError:
        db.session.rollback()
        raise
    commit("update expense")
    return expense


def get_expense(expense_id: Any) -> Expense:
    return get_or_raise(Expense, expense_id, "Expense")


def list_by_staff(staff_id: Any) -> list[Expense]:
    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    return sort_newest_first(Expense.query.filter_by(staff_id=staff.id).all())


def list_by_trip(trip_id: Any) -> list[Expense]:
    if trip_id in (None, ""):
        raise LedgerValidationError({"trip_id": "Trip ID is required."})
    return sort_newest_first(Expense.query.filter_by(trip_id=trip_id).all())


def list_all() -> list[Expense]:
    return sort_newest_first(Expense.query.all())


def summary_by_staff() -> list[dict[str, Any]]:
    """Every staff member with expense count and the latest expenses."""

    grouped: dict[int, list[Expense]] = {}
    for expense in Expense.query.all():
        grouped.setdefault(expense.staff_id, []).append(expense)

    summary = []
    for staff in Staff.query.order_by(Staff.full_name.asc()).all():
        expenses = sort_newest_first(grouped.get(staff.id, []))
        summary.append(
            {
                "staff": staff,
                "expense_count": len(expenses),
                "latest_expenses": expenses[:LATEST_EXPENSES],
            }
        )
    return summary


def delete_expense(expense_id: Any) -> None:
    """Delete an expense that has not reached the balance yet."""

    expense = get_or_raise(Expense, expense_id, "Expense")
    if expense.balance_updated:
        raise LedgerStateError({"id": "Settled expenses cannot be deleted."})
    db.session.delete(expense)
    commit("delete expense")
