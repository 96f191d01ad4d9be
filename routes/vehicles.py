"""Vehicle master data API routes."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import RoleEnum, Trip, Vehicle, VehicleStatus
from routes.auth import roles_required
from schemas import VehicleCreateSchema, VehicleSchema

bp = Blueprint("vehicles", __name__, url_prefix="/api/vehicles")

vehicle_schema = VehicleSchema()
vehicles_schema = VehicleSchema(many=True)
vehicle_create_schema = VehicleCreateSchema()


@bp.get("")
@jwt_required()
def list_vehicles():
    vehicles = Vehicle.query.order_by(Vehicle.license_plate.asc()).all()
    return jsonify(vehicles_schema.dump(vehicles))


@bp.post("")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can add vehicles.")
def create_vehicle():
    try:
        data = vehicle_create_schema.load(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return jsonify({"errors": exc.messages}), 400

    vehicle = Vehicle(
        license_plate=data["license_plate"],
        status=VehicleStatus(data.get("status") or VehicleStatus.ACTIVE.value),
        notes=data.get("notes"),
    )
    db.session.add(vehicle)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"errors": {"licensePlate": f"License plate {data['license_plate']} already exists."}}), 409
    return jsonify(vehicle_schema.dump(vehicle)), 201


@bp.patch("/<int:vehicle_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can update vehicles.")
def update_vehicle(vehicle_id: int):
    vehicle = db.session.get(Vehicle, vehicle_id)
    if vehicle is None:
        return jsonify({"errors": {"id": "Vehicle not found."}}), 404
    try:
        data = vehicle_create_schema.load(request.get_json(silent=True) or {}, partial=True)
    except ValidationError as exc:
        return jsonify({"errors": exc.messages}), 400

    if "license_plate" in data:
        vehicle.license_plate = data["license_plate"]
    if data.get("status"):
        vehicle.status = VehicleStatus(data["status"])
    if "notes" in data:
        vehicle.notes = data["notes"]
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"errors": {"licensePlate": "License plate already exists."}}), 409
    return jsonify(vehicle_schema.dump(vehicle))


@bp.delete("/<int:vehicle_id>")
@roles_required(RoleEnum.admin, RoleEnum.manager, message="Only administrators or managers can remove vehicles.")
def delete_vehicle(vehicle_id: int):
    vehicle = db.session.get(Vehicle, vehicle_id)
    if vehicle is None:
        return jsonify({"errors": {"id": "Vehicle not found."}}), 404
    if Trip.query.filter_by(vehicle_id=vehicle.id).first() is not None:
        vehicle.status = VehicleStatus.INACTIVE
        db.session.commit()
        return jsonify(vehicle_schema.dump(vehicle))
    db.session.delete(vehicle)
    db.session.commit()
    return "", 204
