from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, UniqueConstraint

from extensions import db
from werkzeug.security import generate_password_hash, check_password_hash


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RoleEnum(str, Enum):
    admin = "admin"
    manager = "manager"
    staff = "staff"


class RecordStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

    @property
    def label(self) -> str:
        """Return a UI friendly label for the enum value."""

        return self.value.title()


class VehicleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class TripStatus(str, Enum):
    PENDING = "PENDING"
    WAITING_FOR_PRICE = "WAITING_FOR_PRICE"
    PRICED = "PRICED"

    @property
    def rank(self) -> int:
        return _TRIP_STATUS_ORDER.index(self)

    @classmethod
    def parse(cls, value) -> "TripStatus":
        """Accept enum members, raw values and the legacy ``APPROVED`` name."""

        if isinstance(value, cls):
            return value
        text = str(value or "").strip().upper()
        if text == "APPROVED":
            return cls.WAITING_FOR_PRICE
        return cls(text)


_TRIP_STATUS_ORDER = [TripStatus.PENDING, TripStatus.WAITING_FOR_PRICE, TripStatus.PRICED]


class TripSource(str, Enum):
    INTERNAL = "internal"
    PUBLIC = "public"


class WageRole(str, Enum):
    DRIVER = "driver"
    ASSISTANT = "assistant"


# The five fixed expense categories captured on every trip.
TRIP_EXPENSE_FIELDS = ("police_fee", "toll_fee", "food_fee", "gas_money", "mechanic_fee")


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.Enum(RoleEnum), nullable=False, default=RoleEnum.staff)
    active = db.Column(db.Boolean, default=True)

    def set_password(self, pw): self.password_hash = generate_password_hash(pw)
    def check_password(self, pw): return check_password_hash(self.password_hash, pw)


class Staff(db.Model):
    __tablename__ = "staff"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    short_name = db.Column(db.String(60), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(40))
    status = db.Column(
        db.Enum(RecordStatus, values_callable=_enum_values, name="staffstatus", validate_strings=True),
        nullable=False,
        default=RecordStatus.ACTIVE,
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return f"<Staff {self.short_name}>"


class Vehicle(db.Model):
    __tablename__ = "vehicles"

    id = db.Column(db.Integer, primary_key=True)
    license_plate = db.Column(db.String(40), nullable=False, unique=True)
    status = db.Column(
        db.Enum(VehicleStatus, values_callable=_enum_values, name="vehiclestatus", validate_strings=True),
        nullable=False,
        default=VehicleStatus.ACTIVE,
    )
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(255), nullable=False)
    representative_name = db.Column(db.String(200))
    phone = db.Column(db.String(40))
    address = db.Column(db.String(255))
    status = db.Column(
        db.Enum(RecordStatus, values_callable=_enum_values, name="customerstatus", validate_strings=True),
        nullable=False,
        default=RecordStatus.ACTIVE,
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        return self.company_name or self.representative_name or ""


class Trip(db.Model):
    __tablename__ = "trips"
    __table_args__ = (
        CheckConstraint("distance > 0", name="ck_trips_distance_positive"),
        CheckConstraint(
            "police_fee >= 0 AND toll_fee >= 0 AND food_fee >= 0 AND gas_money >= 0 AND mechanic_fee >= 0",
            name="ck_trips_expenses_non_negative",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    assistant_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True, index=True)
    starting_point = db.Column(db.String(255), nullable=False)
    ending_point = db.Column(db.String(255), nullable=False)
    distance = db.Column(db.Numeric(10, 2), nullable=False)
    trip_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(
        db.Enum(TripStatus, values_callable=_enum_values, name="tripstatus", validate_strings=True),
        nullable=False,
        default=TripStatus.PENDING,
        index=True,
    )
    source = db.Column(
        db.Enum(TripSource, values_callable=_enum_values, name="tripsource", validate_strings=True),
        nullable=False,
        default=TripSource.INTERNAL,
    )
    price_for_customer = db.Column(db.Numeric(14, 2))
    price_for_staff = db.Column(db.Numeric(14, 2))
    police_fee = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    toll_fee = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    food_fee = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    gas_money = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    mechanic_fee = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    # Contribution of this trip to its customer's debt bucket, kept so that
    # re-pricing only moves the difference.
    debt_recorded_amount = db.Column(db.Numeric(14, 2))
    debt_recorded_year = db.Column(db.Integer)
    notes = db.Column(db.Text)
    approved_at = db.Column(db.DateTime)
    priced_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = db.relationship("Customer", backref="trips")
    vehicle = db.relationship("Vehicle", backref="trips")
    driver = db.relationship("Staff", foreign_keys=[driver_id])
    assistant = db.relationship("Staff", foreign_keys=[assistant_id])

    @property
    def expense_breakdown(self) -> dict[str, Decimal]:
        return {field: Decimal(str(getattr(self, field) or 0)) for field in TRIP_EXPENSE_FIELDS}

    @property
    def expense_total(self) -> Decimal:
        return sum(self.expense_breakdown.values(), Decimal("0"))


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_expenses_amount_positive"),)

    id = db.Column(db.Integer, primary_key=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    staff_short_name = db.Column(db.String(60), nullable=False, index=True)
    staff_full_name = db.Column(db.String(200), nullable=False)
    trip_id = db.Column(db.Integer, db.ForeignKey("trips.id"), nullable=True, index=True)
    created_date = db.Column(db.Date)
    # False until the amount has been applied to the staff balance.
    balance_updated = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    staff = db.relationship("Staff", backref="expenses")
    trip = db.relationship("Trip", backref="expenses")


class StaffBalance(db.Model):
    __tablename__ = "balances"

    id = db.Column(db.Integer, primary_key=True)
    staff_short_name = db.Column(db.String(60), nullable=False, unique=True)
    staff_full_name = db.Column(db.String(200))
    balance = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    date_modified = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StaffWage(db.Model):
    __tablename__ = "staff_wages"
    __table_args__ = (UniqueConstraint("trip_id", "staff_id", name="uq_staff_wages_trip_staff"),)

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, db.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    role = db.Column(
        db.Enum(WageRole, values_callable=_enum_values, name="wagerole", validate_strings=True),
        nullable=False,
    )
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    notes = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    trip = db.relationship("Trip", backref=db.backref("wages", cascade="all,delete-orphan"))
    staff = db.relationship("Staff")


class CustomerDebt(db.Model):
    __tablename__ = "customer_debts"
    __table_args__ = (UniqueConstraint("customer_id", "year", name="uq_customer_debts_customer_year"),)

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    notes = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = db.relationship("Customer", backref="debts")


class CustomerPayment(db.Model):
    __tablename__ = "customer_payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_customer_payments_amount_positive"),)

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    year = db.Column(db.Integer, nullable=False, index=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    customer = db.relationship("Customer", backref="payments")


class CustomerFile(db.Model):
    """Document attached to a customer's debt for one year."""

    __tablename__ = "customer_files"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(120))
    file_size = db.Column(db.Integer, nullable=False, default=0)
    # Relative to the application's instance folder.
    file_path = db.Column(db.String(512), nullable=False)
    notes = db.Column(db.Text)
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    customer = db.relationship("Customer", backref="files")


class SalaryAdjustment(db.Model):
    """Manual correction added to a staff member's computed monthly wage."""

    __tablename__ = "salary_adjustments"
    __table_args__ = (
        UniqueConstraint("staff_id", "year", "month", name="uq_salary_adjustments_staff_year_month"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_salary_adjustments_month"),
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    adjustment_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    reason = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    staff = db.relationship("Staff", backref="salary_adjustments")
