"""initial fleet ledger schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2025-01-06 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f1a9c2e7b10"
down_revision = None
branch_labels = None
depends_on = None


role_enum = sa.Enum("admin", "manager", "staff", name="roleenum")
staff_status = sa.Enum("active", "inactive", name="staffstatus")
customer_status = sa.Enum("active", "inactive", name="customerstatus")
vehicle_status = sa.Enum("ACTIVE", "INACTIVE", name="vehiclestatus")
trip_status = sa.Enum("PENDING", "WAITING_FOR_PRICE", "PRICED", name="tripstatus")
trip_source = sa.Enum("internal", "public", name="tripsource")
wage_role = sa.Enum("driver", "assistant", name="wagerole")


def _timestamps(with_updated=True):
    columns = [sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if with_updated:
        columns.append(sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=True),
    )

    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("short_name", sa.String(length=60), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("status", staff_status, nullable=False, server_default="active"),
        *_timestamps(),
    )
    op.create_index("ix_staff_short_name", "staff", ["short_name"], unique=True)

    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("license_plate", sa.String(length=40), nullable=False, unique=True),
        sa.Column("status", vehicle_status, nullable=False, server_default="ACTIVE"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("representative_name", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("status", customer_status, nullable=False, server_default="active"),
        *_timestamps(),
    )

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id"), nullable=False),
        sa.Column("driver_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=False),
        sa.Column("assistant_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=True),
        sa.Column("starting_point", sa.String(length=255), nullable=False),
        sa.Column("ending_point", sa.String(length=255), nullable=False),
        sa.Column("distance", sa.Numeric(10, 2), nullable=False),
        sa.Column("trip_date", sa.Date(), nullable=False),
        sa.Column("status", trip_status, nullable=False, server_default="PENDING"),
        sa.Column("source", trip_source, nullable=False, server_default="internal"),
        sa.Column("price_for_customer", sa.Numeric(14, 2), nullable=True),
        sa.Column("price_for_staff", sa.Numeric(14, 2), nullable=True),
        sa.Column("police_fee", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("toll_fee", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("food_fee", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("gas_money", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("mechanic_fee", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("debt_recorded_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("debt_recorded_year", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("priced_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("distance > 0", name="ck_trips_distance_positive"),
        sa.CheckConstraint(
            "police_fee >= 0 AND toll_fee >= 0 AND food_fee >= 0 AND gas_money >= 0 AND mechanic_fee >= 0",
            name="ck_trips_expenses_non_negative",
        ),
    )
    for column in ("customer_id", "vehicle_id", "driver_id", "assistant_id", "trip_date", "status"):
        op.create_index(f"ix_trips_{column}", "trips", [column])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=False),
        sa.Column("staff_short_name", sa.String(length=60), nullable=False),
        sa.Column("staff_full_name", sa.String(length=200), nullable=False),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=True),
        sa.Column("created_date", sa.Date(), nullable=True),
        sa.Column("balance_updated", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_expenses_amount_positive"),
    )
    for column in ("staff_id", "staff_short_name", "trip_id"):
        op.create_index(f"ix_expenses_{column}", "expenses", [column])

    op.create_table(
        "balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("staff_short_name", sa.String(length=60), nullable=False, unique=True),
        sa.Column("staff_full_name", sa.String(length=200), nullable=True),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("date_modified", sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "staff_wages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=False),
        sa.Column("role", wage_role, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("trip_id", "staff_id", name="uq_staff_wages_trip_staff"),
    )
    op.create_index("ix_staff_wages_trip_id", "staff_wages", ["trip_id"])
    op.create_index("ix_staff_wages_staff_id", "staff_wages", ["staff_id"])

    op.create_table(
        "customer_debts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("customer_id", "year", name="uq_customer_debts_customer_year"),
    )
    op.create_index("ix_customer_debts_customer_id", "customer_debts", ["customer_id"])

    op.create_table(
        "customer_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.CheckConstraint("amount > 0", name="ck_customer_payments_amount_positive"),
    )
    op.create_index("ix_customer_payments_customer_id", "customer_payments", ["customer_id"])
    op.create_index("ix_customer_payments_year", "customer_payments", ["year"])

    op.create_table(
        "salary_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("adjustment_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("staff_id", "year", "month", name="uq_salary_adjustments_staff_year_month"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_salary_adjustments_month"),
    )
    op.create_index("ix_salary_adjustments_staff_id", "salary_adjustments", ["staff_id"])


def downgrade():
    op.drop_table("salary_adjustments")
    op.drop_table("customer_payments")
    op.drop_table("customer_debts")
    op.drop_table("staff_wages")
    op.drop_table("balances")
    op.drop_table("expenses")
    op.drop_table("trips")
    op.drop_table("customers")
    op.drop_table("vehicles")
    op.drop_table("staff")
    op.drop_table("user")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum in (wage_role, trip_source, trip_status, vehicle_status, customer_status, staff_status, role_enum):
            enum.drop(bind, checkfirst=True)
