"""Customer debt, payment and debt document API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from currency import format_vnd
from ledger import LedgerError, debts
from models import RoleEnum
from routes.auth import roles_required
from schemas import CustomerDebtSchema, CustomerFileSchema, CustomerPaymentSchema, DebtSummarySchema

bp = Blueprint("debts", __name__, url_prefix="/api/debts")

debt_schema = CustomerDebtSchema()
debts_schema = CustomerDebtSchema(many=True)
payment_schema = CustomerPaymentSchema()
payments_schema = CustomerPaymentSchema(many=True)
summary_schema = DebtSummarySchema(many=True)
file_schema = CustomerFileSchema()
files_schema = CustomerFileSchema(many=True)


def _error_response(exc: LedgerError):
    return jsonify({"errors": exc.errors}), exc.status_code


@bp.get("/summary")
@jwt_required()
def debt_summary():
    return jsonify(summary_schema.dump(debts.summary()))


@bp.get("/customers/<int:customer_id>")
@jwt_required()
def customer_debts(customer_id: int):
    year = request.args.get("year")
    try:
        rows = debts.get_customer_debts(customer_id)
        payments = debts.get_customer_payments(customer_id)
        remaining = debts.remaining_debt(customer_id, year)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(
        {
            "debts": debts_schema.dump(rows),
            "payments": payments_schema.dump(payments),
            "remaining": str(remaining),
            "remainingDisplay": format_vnd(remaining),
        }
    )


@bp.put("/customers/<int:customer_id>/<int:year>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can edit debts.")
def set_debt(customer_id: int, year: int):
    payload = request.get_json(silent=True) or {}
    try:
        debt = debts.set_debt(customer_id, year, payload.get("amount"), payload.get("notes"))
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(debt_schema.dump(debt))


@bp.post("/customers/<int:customer_id>/payments")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can record payments.")
def record_payment(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        payment = debts.record_payment(
            customer_id,
            payload.get("amount"),
            payload.get("paymentDate", payload.get("payment_date")),
            payload.get("year"),
            payload.get("notes"),
        )
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(payment_schema.dump(payment)), 201


@bp.delete("/payments/<int:payment_id>")
@roles_required(RoleEnum.admin, message="Only administrators can delete payments.")
def delete_payment(payment_id: int):
    try:
        debts.delete_payment(payment_id)
    except LedgerError as exc:
        return _error_response(exc)
    return "", 204


@bp.get("/customers/<int:customer_id>/files")
@bp.get("/customers/<int:customer_id>/<int:year>/files")
@jwt_required()
def list_files(customer_id: int, year: int | None = None):
    try:
        files = debts.get_customer_files(customer_id, year)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(files_schema.dump(files))


@bp.post("/customers/<int:customer_id>/<int:year>/files")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can upload debt files.")
def upload_file(customer_id: int, year: int):
    if "file" not in request.files:
        return jsonify({"errors": {"file": "No file part in the request."}}), 400
    try:
        record = debts.upload_debt_file(customer_id, year, request.files["file"], request.form.get("notes"))
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(file_schema.dump(record)), 201


@bp.get("/files/<int:file_id>/download")
@jwt_required()
def download_file(file_id: int):
    try:
        record = debts.get_debt_file(file_id)
    except LedgerError as exc:
        return _error_response(exc)
    path = debts.file_absolute_path(record)
    if not path.exists():
        current_app.logger.warning("Debt file %s is missing from %s", record.id, path)
        return jsonify({"errors": {"file": "Stored file not found."}}), 404
    return send_file(
        path,
        mimetype=record.file_type or "application/octet-stream",
        as_attachment=True,
        download_name=record.file_name,
    )


@bp.delete("/files/<int:file_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can delete debt files.")
def delete_file(file_id: int):
    try:
        debts.delete_debt_file(file_id)
    except LedgerError as exc:
        return _error_response(exc)
    return "", 204
