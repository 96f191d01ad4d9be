"""Trip lifecycle: ``PENDING -> WAITING_FOR_PRICE -> PRICED``.

Each transition fans out into the other ledgers:

* creating a trip with expenses records one deferred expense for the driver,
* approving it settles those expenses against the driver's balance,
* pricing it writes the crew's wage rows and adds the customer price to the
  customer's debt for the trip year.

Every step commits on its own. A failure part way through leaves the steps
that already completed in place and is reported to the caller.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

from flask import current_app

from extensions import db
from models import (
    TRIP_EXPENSE_FIELDS,
    Customer,
    Expense,
    Staff,
    Trip,
    TripSource,
    TripStatus,
    Vehicle,
)
from . import balance as balance_ledger
from . import debts as debt_ledger
from . import expenses as expense_recorder
from . import wages as wage_calculator
from .common import ZERO, commit, get_or_raise, parse_date, parse_decimal, parse_int, strip_or_none
from .errors import LedgerError, LedgerStateError, LedgerValidationError

REQUIRED_FIELDS = ("trip_date", "starting_point", "ending_point", "driver_id", "customer_id", "vehicle_id", "distance")
PRICE_FIELDS = ("price_for_customer", "price_for_staff")
CREW_FIELDS = ("driver_id", "assistant_id")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _has(payload: Mapping[str, Any], field: str) -> bool:
    return field in payload or _camel(field) in payload


def _get(payload: Mapping[str, Any], field: str, default: Any = None) -> Any:
    if field in payload:
        return payload[field]
    return payload.get(_camel(field), default)


def _parse_status(value: Any, errors: Dict[str, str]) -> Optional[TripStatus]:
    try:
        return TripStatus.parse(value)
    except ValueError:
        errors["status"] = "Status must be PENDING, WAITING_FOR_PRICE or PRICED."
        return None


def _default_status(source: TripSource) -> TripStatus:
    key = "TRIP_PUBLIC_DEFAULT_STATUS" if source is TripSource.PUBLIC else "TRIP_DEFAULT_STATUS"
    status = TripStatus.parse(current_app.config.get(key) or TripStatus.PENDING)
    if status is TripStatus.PRICED:
        # A new trip has no price yet.
        return TripStatus.WAITING_FOR_PRICE
    return status


def _parse_fees(payload: Mapping[str, Any], errors: Dict[str, str], *, only_present: bool) -> Dict[str, Decimal]:
    fees: Dict[str, Decimal] = {}
    for field in TRIP_EXPENSE_FIELDS:
        if only_present and not _has(payload, field):
            continue
        value = parse_decimal(_get(payload, field), field, errors)
        if value is None:
            if field not in errors:
                fees[field] = ZERO
            continue
        if value < 0:
            errors[field] = "Expense amounts cannot be negative."
            continue
        fees[field] = value
    return fees


def _parse_price(payload: Mapping[str, Any], field: str, errors: Dict[str, str]) -> Optional[Decimal]:
    value = parse_decimal(_get(payload, field), field, errors)
    if value is not None and value <= 0:
        errors[field] = "Price must be greater than 0."
        return None
    return value


def _resolve(model, record_id: Optional[int], label: str, field: str):
    if record_id is None:
        return None
    return get_or_raise(model, record_id, label, field=field)


def expense_description(trip: Trip) -> str:
    """``Trip expenses <date> - <company> - <from> - <to>``."""

    reason = current_app.config.get("TRIP_EXPENSE_REASON", "Trip expenses")
    company = trip.customer.display_name if trip.customer else ""
    trip_day = trip.trip_date.isoformat() if trip.trip_date else ""
    return f"{reason} {trip_day} - {company} - {trip.starting_point} - {trip.ending_point}"


def trip_expense_total(trip: Trip) -> Decimal:
    return trip.expense_total


def _trip_expense(trip_id: int) -> Optional[Expense]:
    return Expense.query.filter_by(trip_id=trip_id).order_by(Expense.id.asc()).first()


def _record_trip_expense(trip: Trip) -> Optional[Expense]:
    total = trip.expense_total
    if total <= 0:
        return None
    return expense_recorder.create_deferred(
        total,
        trip.driver_id,
        trip.id,
        current_app.config.get("TRIP_EXPENSE_REASON", "Trip expenses"),
        trip.trip_date,
        expense_description(trip),
    )


def _sync_trip_expense(trip: Trip) -> Optional[Expense]:
    """Create, rewrite or remove the trip's expense row to match its fees."""

    expense = _trip_expense(trip.id)
    total = trip.expense_total
    reason = current_app.config.get("TRIP_EXPENSE_REASON", "Trip expenses")

    if expense is None:
        return _record_trip_expense(trip)

    if total > 0:
        return expense_recorder.update_amount_and_settle(
            expense.id,
            total,
            trip.trip_date,
            expense.reason or reason,
            trip.driver_id,
            trip_id=trip.id,
            description=expense_description(trip),
        )

    if expense.balance_updated:
        # Give back what the settled row took from the balance.
        try:
            balance_ledger._apply(expense.staff_short_name, expense.amount, reason, trip.trip_date, sign=1)
        except LedgerError:
            db.session.rollback()
            raise
    db.session.delete(expense)
    commit("remove trip expense")
    current_app.logger.info("Removed expense %s of trip %s", expense.id, trip.id)
    return None


def _sync_debt(trip: Trip, previous_customer_id: Optional[int] = None) -> None:
    """Bring the customer debt in line with the trip's current price.

    Only the difference against the contribution already recorded for the
    trip is applied. When the bucket changes (other year or customer) the old
    contribution is taken out of the old bucket and the full price is added
    to the new one.
    """

    amount = Decimal(str(trip.price_for_customer or 0))
    year = trip.trip_date.year
    recorded = Decimal(str(trip.debt_recorded_amount or 0))
    old_customer = previous_customer_id or trip.customer_id
    old_year = trip.debt_recorded_year

    try:
        if trip.debt_recorded_amount is not None and (old_customer, old_year) != (trip.customer_id, year):
            if recorded:
                debt_ledger._apply_debt(old_customer, old_year, -recorded)
            if amount:
                debt_ledger._apply_debt(trip.customer_id, year, amount)
        elif amount != recorded:
            debt_ledger._apply_debt(trip.customer_id, year, amount - recorded)
    except LedgerError:
        db.session.rollback()
        raise

    trip.debt_recorded_amount = amount
    trip.debt_recorded_year = year
    commit("record customer debt")
    current_app.logger.info(
        "Trip %s contributes %s to debt of customer %s for %s (was %s)",
        trip.id,
        amount,
        trip.customer_id,
        year,
        recorded,
    )


def _settle(trip: Trip) -> None:
    if trip.driver_id is None:
        raise LedgerValidationError({"driver_id": "Trip has no driver."})
    balance_ledger.settle_trip_expenses(trip.id)


def create_trip(payload: Mapping[str, Any], *, source: TripSource | str = TripSource.INTERNAL) -> Trip:
    """Validate and store a new trip, then record its deferred expense."""

    source = TripSource(source)
    errors: Dict[str, str] = {}

    trip_date = parse_date(_get(payload, "trip_date"), "trip_date", errors, required=True)
    starting_point = strip_or_none(_get(payload, "starting_point"))
    if not starting_point:
        errors["starting_point"] = "Starting point is required."
    ending_point = strip_or_none(_get(payload, "ending_point"))
    if not ending_point:
        errors["ending_point"] = "Ending point is required."
    driver_id = parse_int(_get(payload, "driver_id"), "driver_id", errors, required=True)
    assistant_id = parse_int(_get(payload, "assistant_id"), "assistant_id", errors)
    customer_id = parse_int(_get(payload, "customer_id"), "customer_id", errors, required=True)
    vehicle_id = parse_int(_get(payload, "vehicle_id"), "vehicle_id", errors, required=True)
    distance = parse_decimal(_get(payload, "distance"), "distance", errors, required=True)
    if distance is not None and distance <= 0:
        errors["distance"] = "Distance must be greater than 0."
    if driver_id is not None and assistant_id is not None and driver_id == assistant_id:
        errors["assistant_id"] = "Assistant must be different from the driver."
    fees = _parse_fees(payload, errors, only_present=False)
    if errors:
        raise LedgerValidationError(errors)

    customer = _resolve(Customer, customer_id, "Customer", "customer_id")
    vehicle = _resolve(Vehicle, vehicle_id, "Vehicle", "vehicle_id")
    driver = _resolve(Staff, driver_id, "Driver", "driver_id")
    assistant = _resolve(Staff, assistant_id, "Assistant", "assistant_id")

    status = _default_status(source)
    trip = Trip(
        customer=customer,
        vehicle=vehicle,
        driver=driver,
        assistant=assistant,
        starting_point=starting_point,
        ending_point=ending_point,
        distance=distance,
        trip_date=trip_date,
        status=status,
        source=source,
        notes=strip_or_none(_get(payload, "notes")),
        approved_at=datetime.utcnow() if status is not TripStatus.PENDING else None,
        **fees,
    )
    db.session.add(trip)
    commit("create trip")
    current_app.logger.info("Trip %s created (%s, %s)", trip.id, source.value, status.value)

    _record_trip_expense(trip)
    if status is not TripStatus.PENDING:
        _settle(trip)
    return trip


def approve_trip(trip_id: Any) -> Trip:
    """Move a pending trip to waiting-for-price and settle its expenses."""

    trip = get_or_raise(Trip, trip_id, "Trip")
    if trip.status is not TripStatus.PENDING:
        raise LedgerStateError({"status": f"Only pending trips can be approved (trip is {trip.status.value})."})
    if trip.driver_id is None:
        raise LedgerValidationError({"driver_id": "Trip has no driver."})

    trip.status = TripStatus.WAITING_FOR_PRICE
    trip.approved_at = datetime.utcnow()
    commit("approve trip")
    current_app.logger.info("Trip %s approved", trip.id)

    if _trip_expense(trip.id) is None:
        _record_trip_expense(trip)
    _settle(trip)
    return trip


def set_price(trip_id: Any, price_for_customer: Any, price_for_staff: Any = None) -> Trip:
    """Price an approved trip, then write wages and customer debt."""

    errors: Dict[str, str] = {}
    payload = {"price_for_customer": price_for_customer, "price_for_staff": price_for_staff}
    customer_price = _parse_price(payload, "price_for_customer", errors)
    if customer_price is None and "price_for_customer" not in errors:
        errors["price_for_customer"] = "Price for customer is required."
    staff_price = _parse_price(payload, "price_for_staff", errors)
    if errors:
        raise LedgerValidationError(errors)

    trip = get_or_raise(Trip, trip_id, "Trip")
    if trip.status is TripStatus.PENDING:
        raise LedgerStateError({"status": "Trip must be approved before it can be priced."})

    trip.price_for_customer = customer_price
    trip.price_for_staff = staff_price if staff_price is not None else customer_price
    trip.status = TripStatus.PRICED
    trip.priced_at = datetime.utcnow()
    commit("price trip")
    current_app.logger.info("Trip %s priced at %s", trip.id, customer_price)

    wage_calculator.save_wages_for_trip(trip)
    _sync_debt(trip)
    return trip


def update_trip(trip_id: Any, patch: Mapping[str, Any]) -> Trip:
    """Apply a partial update and re-run whatever the change affects."""

    trip = get_or_raise(Trip, trip_id, "Trip")
    errors: Dict[str, str] = {}
    changes: Dict[str, Any] = {}

    if _has(patch, "trip_date"):
        changes["trip_date"] = parse_date(_get(patch, "trip_date"), "trip_date", errors, required=True)
    for field in ("starting_point", "ending_point"):
        if _has(patch, field):
            value = strip_or_none(_get(patch, field))
            if not value:
                errors[field] = "This field is required."
            changes[field] = value
    for field in ("driver_id", "customer_id", "vehicle_id"):
        if _has(patch, field):
            changes[field] = parse_int(_get(patch, field), field, errors, required=True)
    if _has(patch, "assistant_id"):
        changes["assistant_id"] = parse_int(_get(patch, "assistant_id"), "assistant_id", errors)
    if _has(patch, "distance"):
        distance = parse_decimal(_get(patch, "distance"), "distance", errors, required=True)
        if distance is not None and distance <= 0:
            errors["distance"] = "Distance must be greater than 0."
        changes["distance"] = distance
    if _has(patch, "notes"):
        changes["notes"] = strip_or_none(_get(patch, "notes"))
    for field in PRICE_FIELDS:
        if _has(patch, field):
            changes[field] = _parse_price(patch, field, errors)
    fees = _parse_fees(patch, errors, only_present=True)

    new_status = trip.status
    if _has(patch, "status"):
        parsed = _parse_status(_get(patch, "status"), errors)
        if parsed is not None:
            new_status = parsed

    driver_id = changes.get("driver_id", trip.driver_id)
    assistant_id = changes.get("assistant_id", trip.assistant_id)
    if driver_id is not None and assistant_id is not None and driver_id == assistant_id:
        errors["assistant_id"] = "Assistant must be different from the driver."
    if errors:
        raise LedgerValidationError(errors)

    if new_status.rank < trip.status.rank:
        raise LedgerStateError(
            {"status": f"Trip cannot move back from {trip.status.value} to {new_status.value}."}
        )
    customer_price = changes.get("price_for_customer", trip.price_for_customer)
    if new_status is TripStatus.PRICED and not customer_price:
        raise LedgerValidationError({"price_for_customer": "Price for customer is required."})

    _resolve(Customer, changes.get("customer_id"), "Customer", "customer_id")
    _resolve(Vehicle, changes.get("vehicle_id"), "Vehicle", "vehicle_id")
    _resolve(Staff, changes.get("driver_id"), "Driver", "driver_id")
    _resolve(Staff, changes.get("assistant_id"), "Assistant", "assistant_id")

    previous = {
        "status": trip.status,
        "customer_id": trip.customer_id,
        "driver_id": trip.driver_id,
        "assistant_id": trip.assistant_id,
        "trip_date": trip.trip_date,
        "price_for_customer": trip.price_for_customer,
        "price_for_staff": trip.price_for_staff,
        "fees": trip.expense_breakdown,
    }

    for field, value in {**changes, **fees}.items():
        setattr(trip, field, value)
    if trip.price_for_staff is None and trip.price_for_customer is not None:
        # The staff price follows the customer price unless set explicitly.
        trip.price_for_staff = trip.price_for_customer
    if new_status is not trip.status:
        trip.status = new_status
        now = datetime.utcnow()
        if previous["status"] is TripStatus.PENDING:
            trip.approved_at = now
        if new_status is TripStatus.PRICED:
            trip.priced_at = now
    commit("update trip")
    current_app.logger.info("Trip %s updated (%s)", trip.id, ", ".join(sorted({**changes, **fees})) or "status")

    touched = set(changes) | set(fees)
    if trip.expense_breakdown != previous["fees"] or touched & {"driver_id", "trip_date"}:
        _sync_trip_expense(trip)
    if trip.status is not TripStatus.PENDING:
        _settle(trip)

    if trip.status is TripStatus.PRICED:
        became_priced = previous["status"] is not TripStatus.PRICED
        relevant = any(
            getattr(trip, field) != previous[field]
            for field in ("customer_id", "driver_id", "assistant_id", "trip_date", *PRICE_FIELDS)
        )
        if became_priced or relevant:
            wage_calculator.save_wages_for_trip(trip)
            _sync_debt(trip, previous_customer_id=previous["customer_id"])
    return trip


def delete_trip(trip_id: Any) -> None:
    """Remove a trip with its expense row and wage rows.

    Money already moved by the trip (balance debits, customer debt) stays.
    """

    trip = get_or_raise(Trip, trip_id, "Trip")
    expense = _trip_expense(trip.id)
    if expense is not None:
        db.session.delete(expense)
    for other in Expense.query.filter(Expense.trip_id == trip.id).all():
        if expense is None or other.id != expense.id:
            other.trip_id = None
    db.session.delete(trip)
    commit("delete trip")
    current_app.logger.info("Trip %s deleted", trip_id)


def get_trip(trip_id: Any) -> Trip:
    return get_or_raise(Trip, trip_id, "Trip")


def _status_filter(query, status_mode: Any, errors: Dict[str, str]):
    if status_mode in (None, "", "ALL", "all"):
        return query
    mode = str(status_mode).strip().upper()
    if mode == "NON_PENDING":
        return query.filter(Trip.status != TripStatus.PENDING)
    status = _parse_status(mode, errors)
    if status is None:
        errors["status"] = "Status must be PENDING, NON_PENDING, WAITING_FOR_PRICE or PRICED."
        return query
    return query.filter(Trip.status == status)


def list_trips(filters: Optional[Mapping[str, Any]] = None) -> list[Trip]:
    """Trips matching ``filters``, newest trip date first.

    Supported keys: ``status`` (or ``status_mode``; ``PENDING``,
    ``NON_PENDING``, ``WAITING_FOR_PRICE``, ``PRICED``), ``driver_id``,
    ``assistant_id``, ``customer_id``, ``vehicle_id``, ``start_date`` and
    ``end_date``.
    """

    filters = filters or {}
    errors: Dict[str, str] = {}
    query = Trip.query

    mode = _get(filters, "status_mode") or _get(filters, "status")
    query = _status_filter(query, mode, errors)

    for field, column in (
        ("driver_id", Trip.driver_id),
        ("assistant_id", Trip.assistant_id),
        ("customer_id", Trip.customer_id),
        ("vehicle_id", Trip.vehicle_id),
    ):
        value = parse_int(_get(filters, field), field, errors)
        if value is not None:
            query = query.filter(column == value)

    start_date = parse_date(_get(filters, "start_date"), "start_date", errors)
    end_date = parse_date(_get(filters, "end_date"), "end_date", errors)
    if start_date and end_date and start_date > end_date:
        errors["date_range"] = "Start date must be on or before end date."
    if errors:
        raise LedgerValidationError(errors)
    if start_date:
        query = query.filter(Trip.trip_date >= start_date)
    if end_date:
        query = query.filter(Trip.trip_date <= end_date)

    return query.order_by(Trip.trip_date.desc(), Trip.id.desc()).all()


def waiting_for_price(trip_ids: Optional[Iterable[int]] = None) -> list[Trip]:
    query = Trip.query.filter(Trip.status == TripStatus.WAITING_FOR_PRICE)
    if trip_ids is not None:
        query = query.filter(Trip.id.in_(list(trip_ids)))
    return query.order_by(Trip.trip_date.asc(), Trip.id.asc()).all()
