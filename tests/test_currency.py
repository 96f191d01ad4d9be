from decimal import Decimal

import pytest

from currency import format_vnd


@pytest.mark.parametrize(
    "amount, expected",
    [
        (15000000, "15.000.000 ₫"),
        (0, "0 ₫"),
        (999, "999 ₫"),
        (1000, "1.000 ₫"),
        (Decimal("200000.00"), "200.000 ₫"),
        ("5000000", "5.000.000 ₫"),
    ],
)
def test_format_vnd(amount, expected):
    assert format_vnd(amount) == expected


def test_format_vnd_rounds_half_up():
    assert format_vnd(Decimal("1499.5")) == "1.500 ₫"
    assert format_vnd(Decimal("1499.49")) == "1.499 ₫"


def test_format_vnd_negative_amounts_keep_sign():
    assert format_vnd(-250000) == "-250.000 ₫"


def test_format_vnd_none_is_zero():
    assert format_vnd(None) == "0 ₫"
