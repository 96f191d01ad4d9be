"""Expense and staff balance API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ledger import LedgerError, balance, expenses
from models import RoleEnum
from routes.auth import roles_required
from schemas import (
    BalanceOverviewSchema,
    ExpenseSchema,
    ExpenseSummarySchema,
    StaffBalanceSchema,
    StaffSchema,
)

bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")
balances_bp = Blueprint("balances", __name__, url_prefix="/api/balances")

expense_schema = ExpenseSchema()
expenses_schema = ExpenseSchema(many=True)
expense_summary_schema = ExpenseSummarySchema(many=True)
staff_balance_schema = StaffBalanceSchema()
balance_overview_schema = BalanceOverviewSchema(many=True)
staff_schema = StaffSchema()


def _error_response(exc: LedgerError):
    return jsonify({"errors": exc.errors}), exc.status_code


def _field(payload: dict, camel: str, snake: str):
    return payload.get(camel, payload.get(snake))


# --- expenses ----------------------------------------------------------------

@bp.get("")
@jwt_required()
def list_expenses():
    staff_id = request.args.get("staffId")
    trip_id = request.args.get("tripId")
    try:
        if staff_id:
            results = expenses.list_by_staff(staff_id)
        elif trip_id:
            results = expenses.list_by_trip(trip_id)
        else:
            results = expenses.list_all()
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(expenses_schema.dump(results))


@bp.get("/summary")
@jwt_required()
def expense_summary():
    return jsonify(expense_summary_schema.dump(expenses.summary_by_staff()))


@bp.get("/<int:expense_id>")
@jwt_required()
def get_expense(expense_id: int):
    try:
        expense = expenses.get_expense(expense_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(expense_schema.dump(expense))


@bp.post("")
@jwt_required()
def create_expense():
    """Record an ad hoc expense, applied to the balance straight away."""

    payload = request.get_json(silent=True) or {}
    try:
        expense = expenses.create_immediate(
            payload.get("amount"),
            _field(payload, "staffId", "staff_id"),
            payload.get("reason"),
            _field(payload, "createdDate", "created_date"),
            description=payload.get("description"),
            trip_id=_field(payload, "tripId", "trip_id"),
        )
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(expense_schema.dump(expense)), 201


@bp.put("/<int:expense_id>")
@jwt_required()
def update_expense(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expense = expenses.update_amount_and_settle(
            expense_id,
            payload.get("amount"),
            _field(payload, "createdDate", "created_date"),
            payload.get("reason"),
            _field(payload, "staffId", "staff_id"),
            trip_id=_field(payload, "tripId", "trip_id"),
            description=payload.get("description"),
        )
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(expense_schema.dump(expense))


@bp.delete("/<int:expense_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can delete expenses.")
def delete_expense(expense_id: int):
    try:
        expenses.delete_expense(expense_id)
    except LedgerError as exc:
        return _error_response(exc)
    return "", 204


# --- balances ----------------------------------------------------------------

@balances_bp.get("")
@jwt_required()
def list_balances():
    return jsonify(balance_overview_schema.dump(balance.get_all_balances()))


@balances_bp.get("/<short_name>")
@jwt_required()
def get_balance(short_name: str):
    try:
        result = balance.get_balance(short_name)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(staff_balance_schema.dump(result))


@balances_bp.post("/<short_name>/credit")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can credit balances.")
def credit_balance(short_name: str):
    payload = request.get_json(silent=True) or {}
    try:
        balance.credit(short_name, payload.get("amount"), payload.get("reason"), payload.get("date"))
        result = balance.get_balance(short_name)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(staff_balance_schema.dump(result))


@balances_bp.post("/<short_name>/debit")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can debit balances.")
def debit_balance(short_name: str):
    payload = request.get_json(silent=True) or {}
    try:
        balance.debit(short_name, payload.get("amount"), payload.get("reason"), payload.get("date"))
        result = balance.get_balance(short_name)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(staff_balance_schema.dump(result))


@balances_bp.put("/<short_name>")
@roles_required(RoleEnum.admin, message="Only administrators can overwrite balances.")
def set_balance(short_name: str):
    payload = request.get_json(silent=True) or {}
    try:
        balance.set_balance(short_name, payload.get("balance"), payload.get("reason"), payload.get("date"))
        result = balance.get_balance(short_name)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(staff_balance_schema.dump(result))
