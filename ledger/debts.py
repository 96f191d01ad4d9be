"""Customer debt per calendar year, offset by recorded payments, with attached documents."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from flask import current_app
from werkzeug.utils import secure_filename

from extensions import db
from models import Customer, CustomerDebt, CustomerFile, CustomerPayment
from .common import ZERO, commit, get_or_raise, parse_date, parse_decimal, parse_int, strip_or_none, upsert
from .errors import LedgerStoreError, LedgerValidationError


def _year(value: Any) -> int:
    errors: Dict[str, str] = {}
    year = parse_int(value, "year", errors, required=True)
    if errors:
        raise LedgerValidationError(errors)
    return year


def _amount(value: Any, field: str = "amount") -> Decimal:
    errors: Dict[str, str] = {}
    amount = parse_decimal(value, field, errors, required=True)
    if errors:
        raise LedgerValidationError(errors)
    return amount


def _apply_debt(customer_id: int, year: int, amount: Decimal) -> CustomerDebt:
    """Add ``amount`` to the (customer, year) bucket without committing."""

    return upsert(
        CustomerDebt,
        {"customer_id": customer_id, "year": year},
        {"amount": amount},
        increments=("amount",),
    )


def accumulate(customer_id: Any, year: Any, amount: Any) -> CustomerDebt:
    """Add ``amount`` to the customer's debt for ``year``.

    The bucket is created on first use; later calls increment it in place so
    several priced trips in one year share a single row.
    """

    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    parsed_year = _year(year)
    value = _amount(amount)
    debt = _apply_debt(customer.id, parsed_year, value)
    commit("accumulate customer debt")
    current_app.logger.info("Debt of customer %s for %s increased by %s", customer.id, parsed_year, value)
    return debt


def set_debt(customer_id: Any, year: Any, amount: Any, notes: Optional[str] = None) -> CustomerDebt:
    """Replace the debt for (customer, year), used for manual corrections."""

    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    parsed_year = _year(year)
    value = _amount(amount)
    if value < 0:
        raise LedgerValidationError({"amount": "Debt cannot be negative."})
    values: Dict[str, Any] = {"amount": value}
    if notes is not None:
        values["notes"] = strip_or_none(notes)
    debt = upsert(CustomerDebt, {"customer_id": customer.id, "year": parsed_year}, values)
    commit("set customer debt")
    return debt


def record_payment(
    customer_id: Any,
    amount: Any,
    payment_date: Any,
    year: Any = None,
    notes: Optional[str] = None,
) -> CustomerPayment:
    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    errors: Dict[str, str] = {}
    value = parse_decimal(amount, "amount", errors, required=True)
    paid_on = parse_date(payment_date, "payment_date", errors, required=True)
    parsed_year = parse_int(year, "year", errors)
    if value is not None and value <= 0:
        errors["amount"] = "Payment amount must be greater than 0."
    if errors:
        raise LedgerValidationError(errors)

    payment = CustomerPayment(
        customer_id=customer.id,
        amount=value,
        payment_date=paid_on,
        year=parsed_year if parsed_year is not None else paid_on.year,
        notes=strip_or_none(notes),
    )
    db.session.add(payment)
    commit("record customer payment")
    current_app.logger.info("Payment of %s recorded for customer %s", value, customer.id)
    return payment


def delete_payment(payment_id: Any) -> None:
    payment = get_or_raise(CustomerPayment, payment_id, "Payment")
    db.session.delete(payment)
    commit("delete customer payment")


def get_customer_debts(customer_id: Any) -> list[CustomerDebt]:
    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    return CustomerDebt.query.filter_by(customer_id=customer.id).order_by(CustomerDebt.year.desc()).all()


def get_customer_payments(customer_id: Any) -> list[CustomerPayment]:
    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    return (
        CustomerPayment.query.filter_by(customer_id=customer.id)
        .order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
        .all()
    )


DEBT_FILES_DIR = "debt_files"


def file_absolute_path(record: CustomerFile) -> Path:
    return Path(current_app.instance_path or ".") / record.file_path


def upload_debt_file(customer_id: Any, year: Any, file_storage: Any, notes: Optional[str] = None) -> CustomerFile:
    """Store an uploaded document for a customer's debt year.

    Files land under ``<instance>/debt_files/<customer>/<year>/`` with a
    timestamp prefix so re-uploading the same name never overwrites.
    """

    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    parsed_year = _year(year)
    if file_storage is None or not (file_storage.filename or "").strip():
        raise LedgerValidationError({"file": "No file selected."})
    file_name = secure_filename(file_storage.filename)
    if not file_name:
        raise LedgerValidationError({"file": "Invalid file name."})

    relative = Path(DEBT_FILES_DIR) / str(customer.id) / str(parsed_year)
    relative = relative / f"{datetime.utcnow():%Y%m%d%H%M%S%f}_{file_name}"
    target = Path(current_app.instance_path or ".") / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    file_storage.save(str(target))

    size = target.stat().st_size
    if size == 0:
        target.unlink()
        raise LedgerValidationError({"file": "The uploaded file is empty."})

    record = CustomerFile(
        customer_id=customer.id,
        year=parsed_year,
        file_name=file_name,
        file_type=file_storage.mimetype or None,
        file_size=size,
        file_path=relative.as_posix(),
        notes=strip_or_none(notes),
    )
    db.session.add(record)
    try:
        commit("upload customer debt file")
    except LedgerStoreError:
        target.unlink(missing_ok=True)
        raise
    current_app.logger.info(
        "Stored debt file %s (%d bytes) for customer %s, year %s", file_name, size, customer.id, parsed_year
    )
    return record


def get_customer_files(customer_id: Any, year: Any = None) -> list[CustomerFile]:
    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    query = CustomerFile.query.filter_by(customer_id=customer.id)
    if year not in (None, ""):
        query = query.filter_by(year=_year(year))
    return query.order_by(CustomerFile.uploaded_at.desc(), CustomerFile.id.desc()).all()


def get_debt_file(file_id: Any) -> CustomerFile:
    return get_or_raise(CustomerFile, file_id, "File")


def delete_debt_file(file_id: Any) -> None:
    """Remove the file record, then its stored copy if one is still on disk."""

    record = get_or_raise(CustomerFile, file_id, "File")
    record_id, path = record.id, file_absolute_path(record)
    db.session.delete(record)
    commit("delete customer debt file")
    if path.exists():
        path.unlink()
    else:
        current_app.logger.warning("Debt file %s was already missing from %s", record_id, path)


def remaining_debt(customer_id: Any, year: Any = None) -> Decimal:
    """Debt minus payments for a customer, optionally for a single year."""

    customer = get_or_raise(Customer, customer_id, "Customer", field="customer_id")
    debts = CustomerDebt.query.filter_by(customer_id=customer.id)
    payments = CustomerPayment.query.filter_by(customer_id=customer.id)
    if year not in (None, ""):
        parsed_year = _year(year)
        debts = debts.filter_by(year=parsed_year)
        payments = payments.filter_by(year=parsed_year)
    total_debt = sum((Decimal(str(row.amount or 0)) for row in debts), ZERO)
    total_paid = sum((Decimal(str(row.amount or 0)) for row in payments), ZERO)
    return total_debt - total_paid


def summary() -> list[dict[str, Any]]:
    """Per customer totals with a per-year breakdown of debt and payments."""

    debts_by_customer: dict[int, list[CustomerDebt]] = {}
    for debt in CustomerDebt.query.all():
        debts_by_customer.setdefault(debt.customer_id, []).append(debt)
    payments_by_customer: dict[int, list[CustomerPayment]] = {}
    for payment in CustomerPayment.query.all():
        payments_by_customer.setdefault(payment.customer_id, []).append(payment)

    results = []
    for customer in Customer.query.order_by(Customer.company_name.asc()).all():
        by_year: dict[int, dict[str, Decimal]] = {}
        for debt in debts_by_customer.get(customer.id, []):
            row = by_year.setdefault(debt.year, {"debt": ZERO, "payments": ZERO})
            row["debt"] += Decimal(str(debt.amount or 0))
        for payment in payments_by_customer.get(customer.id, []):
            row = by_year.setdefault(payment.year, {"debt": ZERO, "payments": ZERO})
            row["payments"] += Decimal(str(payment.amount or 0))
        for row in by_year.values():
            row["remaining"] = row["debt"] - row["payments"]

        total_debt = sum((row["debt"] for row in by_year.values()), ZERO)
        total_payments = sum((row["payments"] for row in by_year.values()), ZERO)
        results.append(
            {
                "customer": customer,
                "total_debt": total_debt,
                "total_payments": total_payments,
                "remaining": total_debt - total_payments,
                "debts_by_year": dict(sorted(by_year.items(), reverse=True)),
            }
        )
    return results
