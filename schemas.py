from marshmallow import Schema, ValidationError, fields, pre_load, validates
from marshmallow.validate import Length

from currency import format_vnd
from models import RecordStatus, VehicleStatus


class UserSchema(Schema):
    id = fields.Int()
    name = fields.Str()
    email = fields.Str()
    role = fields.Method("get_role")

    def get_role(self, obj):
        role = getattr(obj, "role", None)
        return getattr(role, "value", role)


# --- helpers ---------------------------------------------------------------

def _enum_value(value):
    return getattr(value, "value", value)


def _blank_to_none(data, *keys):
    for key in keys:
        if key in data and isinstance(data[key], str) and not data[key].strip():
            data[key] = None
    return data


# --- master data -------------------------------------------------------------

class StaffSchema(Schema):
    """Serialize DB model -> JSON for the UI."""
    id = fields.Int(dump_only=True)
    full_name = fields.Str(data_key="fullName")
    short_name = fields.Str(data_key="shortName")
    phone = fields.Str(allow_none=True)
    status = fields.Method("get_status")
    created_at = fields.DateTime(data_key="createdAt", dump_only=True)
    updated_at = fields.DateTime(data_key="updatedAt", dump_only=True)

    class Meta:
        ordered = True

    def get_status(self, obj):
        return _enum_value(getattr(obj, "status", None))


class StaffCreateSchema(Schema):
    """Validate JSON -> Python for creates/updates from the UI."""
    full_name = fields.Str(required=True, data_key="fullName", validate=Length(min=1, max=200))
    short_name = fields.Str(required=True, data_key="shortName", validate=Length(min=1, max=60))
    phone = fields.Str(allow_none=True, validate=Length(max=40))
    status = fields.Str(allow_none=True)

    @pre_load
    def normalize_inputs(self, in_data, **kwargs):
        data = dict(in_data or {})
        for key in ("fullName", "shortName", "phone"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        if data.get("status"):
            data["status"] = str(data["status"]).strip().lower()
        return _blank_to_none(data, "phone", "status")

    @validates("status")
    def validate_status(self, value, **kwargs):
        if value is None:
            return
        if value not in {member.value for member in RecordStatus}:
            raise ValidationError("Status must be one of: active, inactive.")


class VehicleSchema(Schema):
    id = fields.Int(dump_only=True)
    license_plate = fields.Str(data_key="licensePlate")
    status = fields.Method("get_status")
    notes = fields.Str(allow_none=True)
    created_at = fields.DateTime(data_key="createdAt", dump_only=True)

    class Meta:
        ordered = True

    def get_status(self, obj):
        return _enum_value(getattr(obj, "status", None))


class VehicleCreateSchema(Schema):
    license_plate = fields.Str(required=True, data_key="licensePlate", validate=Length(min=1, max=40))
    status = fields.Str(allow_none=True)
    notes = fields.Str(allow_none=True)

    @pre_load
    def normalize_inputs(self, in_data, **kwargs):
        data = dict(in_data or {})
        if isinstance(data.get("licensePlate"), str):
            data["licensePlate"] = data["licensePlate"].strip().upper()
        if data.get("status"):
            data["status"] = str(data["status"]).strip().upper()
        return _blank_to_none(data, "status", "notes")

    @validates("status")
    def validate_status(self, value, **kwargs):
        if value is None:
            return
        if value not in {member.value for member in VehicleStatus}:
            raise ValidationError("Status must be one of: ACTIVE, INACTIVE.")


class CustomerSchema(Schema):
    id = fields.Int(dump_only=True)
    company_name = fields.Str(data_key="companyName")
    representative_name = fields.Str(data_key="representativeName", allow_none=True)
    phone = fields.Str(allow_none=True)
    address = fields.Str(allow_none=True)
    status = fields.Method("get_status")
    display_name = fields.Str(data_key="displayName", dump_only=True)

    class Meta:
        ordered = True

    def get_status(self, obj):
        return _enum_value(getattr(obj, "status", None))


class CustomerCreateSchema(Schema):
    company_name = fields.Str(required=True, data_key="companyName", validate=Length(min=1, max=255))
    representative_name = fields.Str(allow_none=True, data_key="representativeName", validate=Length(max=200))
    phone = fields.Str(allow_none=True, validate=Length(max=40))
    address = fields.Str(allow_none=True, validate=Length(max=255))
    status = fields.Str(allow_none=True)

    @pre_load
    def normalize_inputs(self, in_data, **kwargs):
        data = dict(in_data or {})
        for key in ("companyName", "representativeName", "phone", "address"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        if data.get("status"):
            data["status"] = str(data["status"]).strip().lower()
        return _blank_to_none(data, "representativeName", "phone", "address", "status")

    @validates("status")
    def validate_status(self, value, **kwargs):
        if value is None:
            return
        if value not in {member.value for member in RecordStatus}:
            raise ValidationError("Status must be one of: active, inactive.")


# --- trips and ledgers -------------------------------------------------------

class StaffRefSchema(Schema):
    id = fields.Int()
    full_name = fields.Str(data_key="fullName")
    short_name = fields.Str(data_key="shortName")


class TripSchema(Schema):
    id = fields.Int(dump_only=True)
    trip_date = fields.Date(data_key="tripDate")
    starting_point = fields.Str(data_key="startingPoint")
    ending_point = fields.Str(data_key="endingPoint")
    distance = fields.Decimal(as_string=True)
    status = fields.Method("get_status")
    source = fields.Method("get_source")

    customer_id = fields.Int(data_key="customerId")
    vehicle_id = fields.Int(data_key="vehicleId")
    driver_id = fields.Int(data_key="driverId")
    assistant_id = fields.Int(data_key="assistantId", allow_none=True)
    customer = fields.Nested(CustomerSchema, only=("id", "company_name", "display_name"), allow_none=True)
    vehicle = fields.Nested(VehicleSchema, only=("id", "license_plate"), allow_none=True)
    driver = fields.Nested(StaffRefSchema, allow_none=True)
    assistant = fields.Nested(StaffRefSchema, allow_none=True)

    price_for_customer = fields.Decimal(as_string=True, data_key="priceForCustomer", allow_none=True)
    price_for_staff = fields.Decimal(as_string=True, data_key="priceForStaff", allow_none=True)
    police_fee = fields.Decimal(as_string=True, data_key="policeFee")
    toll_fee = fields.Decimal(as_string=True, data_key="tollFee")
    food_fee = fields.Decimal(as_string=True, data_key="foodFee")
    gas_money = fields.Decimal(as_string=True, data_key="gasMoney")
    mechanic_fee = fields.Decimal(as_string=True, data_key="mechanicFee")
    expense_total = fields.Decimal(as_string=True, data_key="expenseTotal", dump_only=True)
    notes = fields.Str(allow_none=True)

    approved_at = fields.DateTime(data_key="approvedAt", allow_none=True)
    priced_at = fields.DateTime(data_key="pricedAt", allow_none=True)
    created_at = fields.DateTime(data_key="createdAt", dump_only=True)
    updated_at = fields.DateTime(data_key="updatedAt", dump_only=True)

    class Meta:
        ordered = True

    def get_status(self, obj):
        return _enum_value(getattr(obj, "status", None))

    def get_source(self, obj):
        return _enum_value(getattr(obj, "source", None))


class ExpenseSchema(Schema):
    id = fields.Int(dump_only=True)
    amount = fields.Decimal(as_string=True)
    amount_display = fields.Method("get_amount_display", data_key="amountDisplay")
    reason = fields.Str()
    description = fields.Str(allow_none=True)
    staff_id = fields.Int(data_key="staffId")
    staff_short_name = fields.Str(data_key="staffShortName")
    staff_full_name = fields.Str(data_key="staffFullName")
    trip_id = fields.Int(data_key="tripId", allow_none=True)
    created_date = fields.Date(data_key="createdDate", allow_none=True)
    balance_updated = fields.Bool(data_key="balanceUpdated")
    created_at = fields.DateTime(data_key="createdAt", dump_only=True)

    class Meta:
        ordered = True

    def get_amount_display(self, obj):
        return format_vnd(obj.amount)


class StaffBalanceSchema(Schema):
    """Dump for ``ledger.balance.get_balance``."""
    staff_short_name = fields.Str(data_key="staffShortName")
    staff_full_name = fields.Str(data_key="staffFullName")
    balance = fields.Decimal(as_string=True)
    balance_display = fields.Method("get_balance_display", data_key="balanceDisplay")
    date_modified = fields.DateTime(data_key="dateModified", allow_none=True)
    transactions = fields.Nested(ExpenseSchema, many=True)

    class Meta:
        ordered = True

    def get_balance_display(self, obj):
        return format_vnd(obj["balance"])


class BalanceOverviewSchema(Schema):
    """Dump for one entry of ``ledger.balance.get_all_balances``."""
    staff = fields.Nested(StaffSchema)
    balance = fields.Decimal(as_string=True)
    balance_display = fields.Method("get_balance_display", data_key="balanceDisplay")
    last_modified = fields.DateTime(data_key="lastModified", allow_none=True)
    expense_count = fields.Int(data_key="expenseCount")
    latest_transactions = fields.Nested(ExpenseSchema, many=True, data_key="latestTransactions")

    class Meta:
        ordered = True

    def get_balance_display(self, obj):
        return format_vnd(obj["balance"])


class ExpenseSummarySchema(Schema):
    staff = fields.Nested(StaffSchema)
    expense_count = fields.Int(data_key="expenseCount")
    latest_expenses = fields.Nested(ExpenseSchema, many=True, data_key="latestExpenses")


class StaffWageSchema(Schema):
    id = fields.Int(dump_only=True)
    trip_id = fields.Int(data_key="tripId")
    staff_id = fields.Int(data_key="staffId")
    role = fields.Method("get_role")
    amount = fields.Decimal(as_string=True)
    notes = fields.Str(allow_none=True)
    trip_date = fields.Method("get_trip_date", data_key="tripDate")
    updated_at = fields.DateTime(data_key="updatedAt", dump_only=True)

    class Meta:
        ordered = True

    def get_role(self, obj):
        return _enum_value(obj.role)

    def get_trip_date(self, obj):
        trip = getattr(obj, "trip", None)
        return trip.trip_date.isoformat() if trip is not None and trip.trip_date else None


class StaffTripSchema(Schema):
    """Dump for entries of ``ledger.wages.get_staff_trips``."""
    trip = fields.Nested(TripSchema)
    role = fields.Method("get_role")
    wage = fields.Decimal(as_string=True)

    def get_role(self, obj):
        return _enum_value(obj["role"])


class SalaryAdjustmentSchema(Schema):
    id = fields.Int(dump_only=True)
    staff_id = fields.Int(data_key="staffId")
    year = fields.Int()
    month = fields.Int()
    adjustment_amount = fields.Decimal(as_string=True, data_key="adjustmentAmount")
    reason = fields.Str(allow_none=True)
    updated_at = fields.DateTime(data_key="updatedAt", dump_only=True)

    class Meta:
        ordered = True


class MonthlySalarySchema(Schema):
    year = fields.Int()
    month = fields.Int()
    trip_count = fields.Int(data_key="tripCount")
    total_salary = fields.Decimal(as_string=True, data_key="totalSalary")
    adjustment = fields.Decimal(as_string=True)
    adjustment_reason = fields.Str(data_key="adjustmentReason", allow_none=True)
    final_salary = fields.Decimal(as_string=True, data_key="finalSalary")
    final_salary_display = fields.Method("get_final_salary_display", data_key="finalSalaryDisplay")

    class Meta:
        ordered = True

    def get_final_salary_display(self, obj):
        return format_vnd(obj["final_salary"])


class SalaryReportSchema(Schema):
    staff = fields.Nested(StaffSchema)
    months = fields.Nested(MonthlySalarySchema, many=True)
    total_salary = fields.Decimal(as_string=True, data_key="totalSalary")


class CustomerDebtSchema(Schema):
    id = fields.Int(dump_only=True)
    customer_id = fields.Int(data_key="customerId")
    year = fields.Int()
    amount = fields.Decimal(as_string=True)
    notes = fields.Str(allow_none=True)
    updated_at = fields.DateTime(data_key="updatedAt", dump_only=True)

    class Meta:
        ordered = True


class CustomerPaymentSchema(Schema):
    id = fields.Int(dump_only=True)
    customer_id = fields.Int(data_key="customerId")
    amount = fields.Decimal(as_string=True)
    payment_date = fields.Date(data_key="paymentDate")
    year = fields.Int()
    notes = fields.Str(allow_none=True)
    created_at = fields.DateTime(data_key="createdAt", dump_only=True)

    class Meta:
        ordered = True


class CustomerFileSchema(Schema):
    id = fields.Int(dump_only=True)
    customer_id = fields.Int(data_key="customerId")
    year = fields.Int()
    file_name = fields.Str(data_key="fileName")
    file_type = fields.Str(data_key="fileType", allow_none=True)
    file_size = fields.Int(data_key="fileSize")
    notes = fields.Str(allow_none=True)
    uploaded_at = fields.DateTime(data_key="uploadedAt", dump_only=True)

    class Meta:
        ordered = True


class DebtSummarySchema(Schema):
    """Dump for one entry of ``ledger.debts.summary``."""
    customer = fields.Nested(CustomerSchema, only=("id", "company_name", "display_name"))
    total_debt = fields.Decimal(as_string=True, data_key="totalDebt")
    total_payments = fields.Decimal(as_string=True, data_key="totalPayments")
    remaining = fields.Decimal(as_string=True)
    debts_by_year = fields.Method("get_debts_by_year", data_key="debtsByYear")

    class Meta:
        ordered = True

    def get_debts_by_year(self, obj):
        return {
            str(year): {key: str(value) for key, value in row.items()}
            for year, row in obj["debts_by_year"].items()
        }
