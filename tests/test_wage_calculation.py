from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from flask import Flask

from ledger import wages
from models import TripStatus, WageRole


@pytest.fixture
def app_ctx():
    app = Flask(__name__)
    app.config["DRIVER_WAGE_RATE"] = Decimal("0.10")
    app.config["ASSISTANT_WAGE_RATE"] = Decimal("0.05")
    with app.app_context():
        yield app


def _trip(price, status=TripStatus.PRICED, trip_date=date(2024, 3, 5)):
    return SimpleNamespace(status=status, price_for_staff=price, trip_date=trip_date)


def _adjustment(year, month, amount, reason=None):
    return SimpleNamespace(year=year, month=month, adjustment_amount=Decimal(amount), reason=reason)


def test_driver_wage_is_ten_percent_of_staff_price(app_ctx):
    assert wages.wage(_trip(Decimal("1000000")), "driver") == Decimal("100000")


def test_assistant_wage_is_five_percent(app_ctx):
    assert wages.wage(_trip(Decimal("1000000")), WageRole.ASSISTANT) == Decimal("50000")


def test_wage_is_zero_until_priced(app_ctx):
    assert wages.wage(_trip(Decimal("1000000"), status=TripStatus.WAITING_FOR_PRICE), "driver") == 0
    assert wages.wage(_trip(Decimal("1000000"), status=TripStatus.PENDING), "driver") == 0


def test_wage_is_zero_without_positive_price(app_ctx):
    assert wages.wage(_trip(None), "driver") == 0
    assert wages.wage(_trip(Decimal("-10")), "driver") == 0


def test_wage_rounds_half_up_to_whole_dong(app_ctx):
    assert wages.wage(_trip(Decimal("12345")), "driver") == Decimal("1235")


def test_wage_rate_comes_from_config(app_ctx):
    app_ctx.config["DRIVER_WAGE_RATE"] = Decimal("0.15")
    assert wages.wage(_trip(Decimal("1000000")), "driver") == Decimal("150000")


def test_unknown_role_is_rejected(app_ctx):
    from ledger import LedgerValidationError

    with pytest.raises(LedgerValidationError):
        wages.wage(_trip(Decimal("1000000")), "mechanic")


def test_monthly_aggregate_groups_and_sorts_descending(app_ctx):
    trips = [
        (_trip(Decimal("1000000"), trip_date=date(2024, 1, 10)), WageRole.DRIVER),
        (_trip(Decimal("2000000"), trip_date=date(2024, 1, 20)), WageRole.DRIVER),
        (_trip(Decimal("1000000"), trip_date=date(2024, 3, 2)), WageRole.ASSISTANT),
    ]
    months = wages.monthly_aggregate(trips, [_adjustment(2024, 1, "-20000", "Advance")])

    assert [(row["year"], row["month"]) for row in months] == [(2024, 3), (2024, 1)]
    january = months[1]
    assert january["trip_count"] == 2
    assert january["total_salary"] == Decimal("300000")
    assert january["adjustment"] == Decimal("-20000")
    assert january["final_salary"] == Decimal("280000")
    assert months[0]["final_salary"] == Decimal("50000")


def test_monthly_aggregate_keeps_adjustment_only_months(app_ctx):
    trips = [(_trip(Decimal("1000000"), trip_date=date(2023, 12, 1)), WageRole.DRIVER)]
    months = wages.monthly_aggregate(trips, [_adjustment(2024, 2, "50000", "Bonus")])

    assert [(row["year"], row["month"]) for row in months] == [(2024, 2), (2023, 12)]
    assert months[0]["trip_count"] == 0
    assert months[0]["final_salary"] == Decimal("50000")
    assert months[0]["adjustment_reason"] == "Bonus"


def test_total_salary_sums_final_figures(app_ctx):
    trips = [
        (_trip(Decimal("1000000"), trip_date=date(2024, 1, 10)), WageRole.DRIVER),
        (_trip(Decimal("1000000"), trip_date=date(2024, 2, 10)), WageRole.DRIVER),
    ]
    assert wages.total_salary(trips, [_adjustment(2024, 2, "10000")]) == Decimal("210000")
