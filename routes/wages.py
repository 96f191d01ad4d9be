"""Wage and salary API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ledger import LedgerError, wages
from models import RoleEnum
from routes.auth import roles_required
from schemas import SalaryAdjustmentSchema, SalaryReportSchema, StaffTripSchema, StaffWageSchema

bp = Blueprint("wages", __name__, url_prefix="/api/staff/<int:staff_id>")

wage_rows_schema = StaffWageSchema(many=True)
staff_trips_schema = StaffTripSchema(many=True)
adjustment_schema = SalaryAdjustmentSchema()
adjustments_schema = SalaryAdjustmentSchema(many=True)
salary_report_schema = SalaryReportSchema()


def _error_response(exc: LedgerError):
    return jsonify({"errors": exc.errors}), exc.status_code


@bp.get("/wages")
@jwt_required()
def staff_wages(staff_id: int):
    try:
        rows = wages.get_staff_wages(staff_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(wage_rows_schema.dump(rows))


@bp.post("/wages/recalculate")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can recalculate wages.")
def recalculate_wages(staff_id: int):
    try:
        rows = wages.recalculate_staff_wages(staff_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(wage_rows_schema.dump(rows))


@bp.get("/trips")
@jwt_required()
def staff_trips(staff_id: int):
    try:
        entries = wages.get_staff_trips(staff_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(staff_trips_schema.dump(entries))


@bp.get("/salary")
@jwt_required()
def salary_report(staff_id: int):
    try:
        report = wages.staff_salary_report(staff_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(salary_report_schema.dump(report))


@bp.get("/salary-adjustments")
@jwt_required()
def list_adjustments(staff_id: int):
    year = request.args.get("year")
    month = request.args.get("month")
    try:
        if year and month:
            adjustment = wages.get_salary_adjustment(staff_id, year, month)
            return jsonify(adjustment_schema.dump(adjustment) if adjustment else None)
        rows = wages.list_salary_adjustments(staff_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(adjustments_schema.dump(rows))


@bp.put("/salary-adjustments")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can adjust salaries.")
def save_adjustment(staff_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        adjustment = wages.save_salary_adjustment(
            staff_id,
            payload.get("year"),
            payload.get("month"),
            payload.get("adjustmentAmount", payload.get("adjustment_amount")),
            payload.get("reason"),
        )
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(adjustment_schema.dump(adjustment))
