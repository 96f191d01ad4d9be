"""Trip API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from ledger import LedgerError, expenses, trips
from models import RoleEnum, TripSource
from routes.auth import current_user, roles_required
from schemas import ExpenseSchema, TripSchema

bp = Blueprint("trips", __name__, url_prefix="/api/trips")
public_bp = Blueprint("public_trips", __name__, url_prefix="/api/public")

trip_schema = TripSchema()
trips_schema = TripSchema(many=True)
expenses_schema = ExpenseSchema(many=True)

FILTER_ARGS = (
    "status",
    "statusMode",
    "driverId",
    "assistantId",
    "customerId",
    "vehicleId",
    "startDate",
    "endDate",
)


def _error_response(exc: LedgerError):
    return jsonify({"errors": exc.errors}), exc.status_code


@bp.get("")
@jwt_required()
def list_trips():
    filters = {key: request.args.get(key) for key in FILTER_ARGS if request.args.get(key)}
    try:
        results = trips.list_trips(filters)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(trips_schema.dump(results))


@bp.get("/waiting-for-price")
@jwt_required()
def list_waiting_for_price():
    return jsonify(trips_schema.dump(trips.waiting_for_price()))


@bp.get("/<int:trip_id>")
@jwt_required()
def get_trip(trip_id: int):
    try:
        trip = trips.get_trip(trip_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(trip_schema.dump(trip))


@bp.get("/<int:trip_id>/expenses")
@jwt_required()
def trip_expenses(trip_id: int):
    try:
        trips.get_trip(trip_id)
        results = expenses.list_by_trip(trip_id)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(expenses_schema.dump(results))


@bp.post("")
@jwt_required()
def create_trip():
    payload = request.get_json(silent=True) or {}
    try:
        trip = trips.create_trip(payload, source=TripSource.INTERNAL)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(trip_schema.dump(trip)), 201


@public_bp.post("/trips")
def submit_public_trip():
    """Trip submission form for drivers without an account."""

    payload = request.get_json(silent=True)
    if not payload:
        payload = request.form.to_dict() if request.form else {}
    try:
        trip = trips.create_trip(payload, source=TripSource.PUBLIC)
    except LedgerError as exc:
        return _error_response(exc)
    current_app.logger.info("Public trip submission %s received", trip.id)
    return jsonify(trip_schema.dump(trip)), 201


@bp.post("/<int:trip_id>/approve")
@jwt_required()
def approve_trip(trip_id: int):
    user = current_user()
    if user is None:
        return jsonify({"msg": "Sign in to approve trips."}), 401
    try:
        trip = trips.approve_trip(trip_id)
    except LedgerError as exc:
        return _error_response(exc)
    current_app.logger.info("Trip %s approved by %s", trip.id, user.email)
    return jsonify(trip_schema.dump(trip))


@bp.post("/<int:trip_id>/price")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can price trips.")
def price_trip(trip_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        trip = trips.set_price(
            trip_id,
            payload.get("priceForCustomer", payload.get("price_for_customer")),
            payload.get("priceForStaff", payload.get("price_for_staff")),
        )
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(trip_schema.dump(trip))


@bp.patch("/<int:trip_id>")
@jwt_required()
def update_trip(trip_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        trip = trips.update_trip(trip_id, payload)
    except LedgerError as exc:
        return _error_response(exc)
    return jsonify(trip_schema.dump(trip))


@bp.delete("/<int:trip_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can delete trips.")
def delete_trip(trip_id: int):
    try:
        trips.delete_trip(trip_id)
    except LedgerError as exc:
        return _error_response(exc)
    return "", 204
