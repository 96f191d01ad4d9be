"""Staff master data API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from marshmallow import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Expense, RecordStatus, RoleEnum, Staff, Trip
from routes.auth import roles_required
from schemas import StaffCreateSchema, StaffSchema

bp = Blueprint("staff", __name__, url_prefix="/api/staff")

staff_schema = StaffSchema()
staff_list_schema = StaffSchema(many=True)
staff_create_schema = StaffCreateSchema()


def _is_referenced(staff: Staff) -> bool:
    trip = Trip.query.filter(or_(Trip.driver_id == staff.id, Trip.assistant_id == staff.id)).first()
    if trip is not None:
        return True
    return Expense.query.filter_by(staff_id=staff.id).first() is not None


@bp.get("")
@jwt_required()
def list_staff():
    query = Staff.query
    status = (request.args.get("status") or "").strip().lower()
    if status:
        try:
            query = query.filter(Staff.status == RecordStatus(status))
        except ValueError:
            return jsonify({"errors": {"status": "Status must be one of: active, inactive."}}), 400
    return jsonify(staff_list_schema.dump(query.order_by(Staff.full_name.asc()).all()))


@bp.get("/<int:staff_id>")
@jwt_required()
def get_staff(staff_id: int):
    staff = db.session.get(Staff, staff_id)
    if staff is None:
        return jsonify({"errors": {"id": "Staff not found."}}), 404
    return jsonify(staff_schema.dump(staff))


@bp.post("")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can add staff.")
def create_staff():
    try:
        data = staff_create_schema.load(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return jsonify({"errors": exc.messages}), 400

    staff = Staff(
        full_name=data["full_name"],
        short_name=data["short_name"],
        phone=data.get("phone"),
        status=RecordStatus(data.get("status") or RecordStatus.ACTIVE.value),
    )
    db.session.add(staff)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"errors": {"shortName": f"Short name {data['short_name']} already exists."}}), 409

    current_app.logger.info("Staff %s created", staff.short_name)
    return jsonify(staff_schema.dump(staff)), 201


@bp.patch("/<int:staff_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can update staff.")
def update_staff(staff_id: int):
    staff = db.session.get(Staff, staff_id)
    if staff is None:
        return jsonify({"errors": {"id": "Staff not found."}}), 404

    try:
        data = staff_create_schema.load(request.get_json(silent=True) or {}, partial=True)
    except ValidationError as exc:
        return jsonify({"errors": exc.messages}), 400

    if "short_name" in data and data["short_name"] != staff.short_name and _is_referenced(staff):
        # Expenses and balances are keyed by the short name.
        return jsonify({"errors": {"shortName": "Short name cannot change once the staff member has records."}}), 409

    for field in ("full_name", "short_name", "phone"):
        if field in data:
            setattr(staff, field, data[field])
    if data.get("status"):
        staff.status = RecordStatus(data["status"])

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"errors": {"shortName": "Short name already exists."}}), 409
    return jsonify(staff_schema.dump(staff))


@bp.delete("/<int:staff_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can remove staff.")
def delete_staff(staff_id: int):
    staff = db.session.get(Staff, staff_id)
    if staff is None:
        return jsonify({"errors": {"id": "Staff not found."}}), 404

    if _is_referenced(staff):
        staff.status = RecordStatus.INACTIVE
        db.session.commit()
        current_app.logger.info("Staff %s deactivated", staff.short_name)
        return jsonify(staff_schema.dump(staff))

    db.session.delete(staff)
    db.session.commit()
    return "", 204
