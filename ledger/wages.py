"""Driver and assistant wages derived from priced trips."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from flask import current_app
from sqlalchemy import or_

from extensions import db
from models import SalaryAdjustment, Staff, StaffWage, Trip, TripStatus, WageRole
from .common import ZERO, commit, get_or_raise, parse_decimal, parse_int, strip_or_none, upsert, whole_amount
from .errors import LedgerValidationError

DEFAULT_RATES = {
    WageRole.DRIVER: Decimal("0.10"),
    WageRole.ASSISTANT: Decimal("0.05"),
}


def _rate(role: WageRole) -> Decimal:
    key = "DRIVER_WAGE_RATE" if role is WageRole.DRIVER else "ASSISTANT_WAGE_RATE"
    configured = current_app.config.get(key)
    if configured is None:
        return DEFAULT_RATES[role]
    return Decimal(str(configured))


def _role(value: Any) -> WageRole:
    if isinstance(value, WageRole):
        return value
    try:
        return WageRole(str(value or "").strip().lower())
    except ValueError as exc:
        raise LedgerValidationError({"role": "Role must be driver or assistant."}) from exc


def wage(trip: Trip, role: Any) -> Decimal:
    """Return the wage a trip pays for ``role``; zero unless priced."""

    role = _role(role)
    if trip is None or trip.status != TripStatus.PRICED:
        return ZERO
    price = Decimal(str(trip.price_for_staff or 0))
    if price <= 0:
        return ZERO
    return whole_amount(price * _rate(role))


def upsert_wage_row(trip_id: int, staff_id: int, role: Any, amount: Any, notes: Optional[str] = None) -> StaffWage:
    """Store the wage for (trip, staff), replacing any previous amount."""

    errors: Dict[str, str] = {}
    value = parse_decimal(amount, "amount", errors, required=True)
    if errors:
        raise LedgerValidationError(errors)
    return upsert(
        StaffWage,
        {"trip_id": trip_id, "staff_id": staff_id},
        {"role": _role(role), "amount": value, "notes": strip_or_none(notes)},
    )


def save_wages_for_trip(trip: Trip) -> list[StaffWage]:
    """Write the driver/assistant wage rows of a trip and drop stale ones."""

    crew = [(trip.driver_id, WageRole.DRIVER)]
    if trip.assistant_id:
        crew.append((trip.assistant_id, WageRole.ASSISTANT))

    rows = []
    for staff_id, role in crew:
        rows.append(upsert_wage_row(trip.id, staff_id, role, wage(trip, role), notes=f"Trip #{trip.id}"))

    keep = [staff_id for staff_id, _ in crew]
    stale = StaffWage.query.filter(StaffWage.trip_id == trip.id, StaffWage.staff_id.notin_(keep)).all()
    for row in stale:
        db.session.delete(row)

    commit("save trip wages")
    current_app.logger.info(
        "Saved %d wage row(s) for trip %s (removed %d)", len(rows), trip.id, len(stale)
    )
    return rows


def get_staff_wages(staff_id: Any) -> list[StaffWage]:
    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    return (
        StaffWage.query.join(Trip, StaffWage.trip_id == Trip.id)
        .filter(StaffWage.staff_id == staff.id)
        .order_by(Trip.trip_date.desc(), StaffWage.id.desc())
        .all()
    )


def get_staff_trips(staff_id: Any) -> list[dict[str, Any]]:
    """Trips the staff member worked on, tagged with their role, newest first."""

    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    trips = (
        Trip.query.filter(or_(Trip.driver_id == staff.id, Trip.assistant_id == staff.id))
        .order_by(Trip.trip_date.desc(), Trip.id.desc())
        .all()
    )
    entries = []
    for trip in trips:
        role = WageRole.DRIVER if trip.driver_id == staff.id else WageRole.ASSISTANT
        entries.append({"trip": trip, "role": role, "wage": wage(trip, role)})
    return entries


def recalculate_staff_wages(staff_id: Any) -> list[StaffWage]:
    """Recompute the wage rows of every priced trip the staff member is on."""

    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    rows = []
    for entry in get_staff_trips(staff.id):
        trip = entry["trip"]
        if trip.status != TripStatus.PRICED:
            continue
        # Rewrite the whole crew so rows of people no longer on the trip go.
        rows.extend(row for row in save_wages_for_trip(trip) if row.staff_id == staff.id)

    crewed = [entry["trip"].id for entry in get_staff_trips(staff.id)]
    stale = StaffWage.query.filter(StaffWage.staff_id == staff.id, StaffWage.trip_id.notin_(crewed)).all()
    for row in stale:
        db.session.delete(row)
    commit("recalculate staff wages")
    current_app.logger.info("Recalculated %d wage row(s) for staff %s", len(rows), staff.short_name)
    return rows


def _entry_wage(entry: Any) -> Decimal:
    if isinstance(entry, dict):
        if entry.get("wage") is not None:
            return Decimal(str(entry["wage"]))
        return wage(entry["trip"], entry["role"])
    trip, role = entry
    return wage(trip, role)


def _entry_trip(entry: Any) -> Trip:
    return entry["trip"] if isinstance(entry, dict) else entry[0]


def monthly_aggregate(trips: Iterable[Any], adjustments: Iterable[SalaryAdjustment] = ()) -> list[dict[str, Any]]:
    """Group trip wages by (year, month) and add the month's adjustment.

    ``trips`` holds the entries of :func:`get_staff_trips` (or ``(trip, role)``
    pairs). Months that only carry an adjustment are still reported.
    """

    months: dict[tuple[int, int], dict[str, Any]] = {}

    def bucket(year: int, month: int) -> dict[str, Any]:
        return months.setdefault(
            (year, month),
            {
                "year": year,
                "month": month,
                "trips": [],
                "trip_count": 0,
                "total_salary": ZERO,
                "adjustment": ZERO,
                "adjustment_reason": None,
            },
        )

    for entry in trips:
        trip = _entry_trip(entry)
        if trip.trip_date is None:
            continue
        row = bucket(trip.trip_date.year, trip.trip_date.month)
        row["trips"].append(entry)
        row["trip_count"] += 1
        row["total_salary"] += _entry_wage(entry)

    for adjustment in adjustments:
        row = bucket(adjustment.year, adjustment.month)
        row["adjustment"] += Decimal(str(adjustment.adjustment_amount or 0))
        row["adjustment_reason"] = adjustment.reason

    result = []
    for key in sorted(months, reverse=True):
        row = months[key]
        row["final_salary"] = row["total_salary"] + row["adjustment"]
        result.append(row)
    return result


def total_salary(trips: Iterable[Any], adjustments: Iterable[SalaryAdjustment] = ()) -> Decimal:
    return sum((row["final_salary"] for row in monthly_aggregate(trips, adjustments)), ZERO)


def _period(year: Any, month: Any) -> tuple[int, int]:
    errors: Dict[str, str] = {}
    parsed_year = parse_int(year, "year", errors, required=True)
    parsed_month = parse_int(month, "month", errors, required=True)
    if parsed_month is not None and not 1 <= parsed_month <= 12:
        errors["month"] = "Month must be between 1 and 12."
    if errors:
        raise LedgerValidationError(errors)
    return parsed_year, parsed_month


def save_salary_adjustment(staff_id: Any, year: Any, month: Any, amount: Any, reason: Optional[str] = None) -> SalaryAdjustment:
    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    parsed_year, parsed_month = _period(year, month)
    errors: Dict[str, str] = {}
    value = parse_decimal(amount, "adjustment_amount", errors, required=True)
    if errors:
        raise LedgerValidationError(errors)

    adjustment = upsert(
        SalaryAdjustment,
        {"staff_id": staff.id, "year": parsed_year, "month": parsed_month},
        {"adjustment_amount": value, "reason": strip_or_none(reason)},
    )
    commit("save salary adjustment")
    current_app.logger.info(
        "Salary adjustment for %s %04d-%02d set to %s", staff.short_name, parsed_year, parsed_month, value
    )
    return adjustment


def get_salary_adjustment(staff_id: Any, year: Any, month: Any) -> Optional[SalaryAdjustment]:
    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    parsed_year, parsed_month = _period(year, month)
    return SalaryAdjustment.query.filter_by(staff_id=staff.id, year=parsed_year, month=parsed_month).first()


def list_salary_adjustments(staff_id: Any) -> list[SalaryAdjustment]:
    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    return (
        SalaryAdjustment.query.filter_by(staff_id=staff.id)
        .order_by(SalaryAdjustment.year.desc(), SalaryAdjustment.month.desc())
        .all()
    )


def staff_salary_report(staff_id: Any) -> dict[str, Any]:
    """Monthly salary breakdown for one staff member."""

    staff = get_or_raise(Staff, staff_id, "Staff", field="staff_id")
    trips = get_staff_trips(staff.id)
    adjustments = list_salary_adjustments(staff.id)
    months = monthly_aggregate(trips, adjustments)
    return {
        "staff": staff,
        "months": months,
        "total_salary": sum((row["final_salary"] for row in months), ZERO),
    }
