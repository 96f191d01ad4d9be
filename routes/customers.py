"""Customer master data API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from marshmallow import ValidationError

from extensions import db
from models import Customer, CustomerDebt, CustomerFile, CustomerPayment, RecordStatus, RoleEnum, Trip
from routes.auth import roles_required
from schemas import CustomerCreateSchema, CustomerSchema

bp = Blueprint("customers", __name__, url_prefix="/api/customers")

customer_schema = CustomerSchema()
customers_schema = CustomerSchema(many=True)
customer_create_schema = CustomerCreateSchema()


def _is_referenced(customer: Customer) -> bool:
    for model in (Trip, CustomerDebt, CustomerPayment, CustomerFile):
        if model.query.filter_by(customer_id=customer.id).first() is not None:
            return True
    return False


@bp.get("")
@jwt_required()
def list_customers():
    search = (request.args.get("search") or "").strip()
    query = Customer.query
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            Customer.company_name.ilike(pattern) | Customer.representative_name.ilike(pattern)
        )
    return jsonify(customers_schema.dump(query.order_by(Customer.company_name.asc()).all()))


@bp.get("/<int:customer_id>")
@jwt_required()
def get_customer(customer_id: int):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"errors": {"id": "Customer not found."}}), 404
    return jsonify(customer_schema.dump(customer))


@bp.post("")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can add customers.")
def create_customer():
    try:
        data = customer_create_schema.load(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return jsonify({"errors": exc.messages}), 400

    customer = Customer(
        company_name=data["company_name"],
        representative_name=data.get("representative_name"),
        phone=data.get("phone"),
        address=data.get("address"),
        status=RecordStatus(data.get("status") or RecordStatus.ACTIVE.value),
    )
    db.session.add(customer)
    db.session.commit()
    return jsonify(customer_schema.dump(customer)), 201


@bp.patch("/<int:customer_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can update customers.")
def update_customer(customer_id: int):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"errors": {"id": "Customer not found."}}), 404
    try:
        data = customer_create_schema.load(request.get_json(silent=True) or {}, partial=True)
    except ValidationError as exc:
        return jsonify({"errors": exc.messages}), 400

    for field in ("company_name", "representative_name", "phone", "address"):
        if field in data:
            setattr(customer, field, data[field])
    if data.get("status"):
        customer.status = RecordStatus(data["status"])
    db.session.commit()
    return jsonify(customer_schema.dump(customer))


@bp.delete("/<int:customer_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can remove customers.")
def delete_customer(customer_id: int):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"errors": {"id": "Customer not found."}}), 404
    if _is_referenced(customer):
        customer.status = RecordStatus.INACTIVE
        db.session.commit()
        return jsonify(customer_schema.dump(customer))
    db.session.delete(customer)
    db.session.commit()
    return "", 204
