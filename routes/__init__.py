from . import (
    auth,
    customers,
    debts,
    expenses,
    staff,
    trips,
    vehicles,
    wages,
)

__all__ = [
    "auth",
    "customers",
    "debts",
    "expenses",
    "staff",
    "trips",
    "vehicles",
    "wages",
]
