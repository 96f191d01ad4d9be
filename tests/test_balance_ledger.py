import importlib
import os
import sys
import unittest
from datetime import date
from decimal import Decimal

from ledger import LedgerNotFoundError, LedgerValidationError, balance, expenses
from models import Customer, Expense, Staff, StaffBalance, Trip, Vehicle


class BalanceLedgerTestCase(unittest.TestCase):
    def setUp(self):
        os.environ["DATABASE_URL"] = "sqlite:///:memory:"
        if "app" in sys.modules:
            self.app_module = importlib.reload(sys.modules["app"])
        else:
            self.app_module = importlib.import_module("app")

        self.app = self.app_module.create_app()
        self.app.testing = True
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.db = self.app_module.db
        self.db.create_all()

        self.driver = Staff(full_name="Nguyen Van An", short_name="An")
        self.other = Staff(full_name="Tran Thi Binh", short_name="Binh")
        self.customer = Customer(company_name="Hai Phong Logistics")
        self.vehicle = Vehicle(license_plate="29C-12345")
        self.db.session.add_all([self.driver, self.other, self.customer, self.vehicle])
        self.db.session.commit()

    def tearDown(self):
        self.db.session.remove()
        self.db.drop_all()
        self.ctx.pop()
        os.environ.pop("DATABASE_URL", None)
        if "app" in sys.modules:
            del sys.modules["app"]

    def _trip(self):
        trip = Trip(
            customer_id=self.customer.id,
            vehicle_id=self.vehicle.id,
            driver_id=self.driver.id,
            starting_point="Ha Noi",
            ending_point="Hai Phong",
            distance=Decimal("120"),
            trip_date=date(2024, 3, 5),
        )
        self.db.session.add(trip)
        self.db.session.commit()
        return trip

    def test_credit_and_debit_keep_a_single_row(self):
        balance.credit("An", 1000000, "Advance", "2024-03-01")
        balance.debit("An", 300000, "Fuel", "2024-03-02")
        balance.debit("An", -200000, "Tolls", "2024-03-03")

        rows = StaffBalance.query.filter_by(staff_short_name="An").all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].balance, Decimal("500000"))
        self.assertEqual(rows[0].staff_full_name, "Nguyen Van An")
        self.assertEqual(rows[0].date_modified.date(), date(2024, 3, 3))

    def test_debit_without_existing_row_goes_negative(self):
        balance.debit("Binh", 150000, "Food", date(2024, 1, 1))
        self.assertEqual(balance.get_balance("Binh")["balance"], Decimal("-150000"))

    def test_zero_amount_is_rejected(self):
        with self.assertRaises(LedgerValidationError):
            balance.credit("An", 0, "Nothing", "2024-03-01")
        self.assertEqual(StaffBalance.query.count(), 0)

    def test_reason_is_required(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            balance.debit("An", 1000, "  ", "2024-03-01")
        self.assertIn("reason", ctx.exception.errors)

    def test_unknown_staff_is_not_found(self):
        with self.assertRaises(LedgerNotFoundError):
            balance.credit("Nobody", 1000, "Advance", "2024-03-01")

    def test_set_balance_stores_absolute_value(self):
        balance.credit("An", 1000, "Advance", "2024-03-01")
        balance.set_balance("An", -750000, "Manual correction", "2024-03-04")
        self.assertEqual(balance.get_balance("An")["balance"], Decimal("750000"))

    def test_get_balance_defaults_and_sorts_history(self):
        result = balance.get_balance("Binh")
        self.assertEqual(result["balance"], Decimal("0"))
        self.assertIsNone(result["date_modified"])
        self.assertEqual(result["transactions"], [])

        trip = self._trip()
        older = expenses.create_deferred(1000, self.driver.id, trip.id, "Fuel", "2024-01-01")
        newer = expenses.create_deferred(2000, self.driver.id, trip.id, "Fuel", "2024-02-01")
        undated = Expense(
            amount=Decimal("500"),
            reason="Legacy",
            staff_id=self.driver.id,
            staff_short_name="An",
            staff_full_name="Nguyen Van An",
        )
        self.db.session.add(undated)
        self.db.session.commit()

        history = balance.get_balance("An")["transactions"]
        self.assertEqual([row.id for row in history], [newer.id, older.id, undated.id])

    def test_all_balances_lists_every_staff_with_latest_three(self):
        for day in range(1, 6):
            expenses.create_immediate(1000, self.driver.id, "Parking", f"2024-03-0{day}")

        overview = {row["staff"].short_name: row for row in balance.get_all_balances()}
        self.assertEqual(set(overview), {"An", "Binh"})
        self.assertEqual(overview["An"]["balance"], Decimal("-5000"))
        self.assertEqual(overview["An"]["expense_count"], 5)
        self.assertEqual(
            [row.created_date.day for row in overview["An"]["latest_transactions"]],
            [5, 4, 3],
        )
        self.assertEqual(overview["Binh"]["balance"], Decimal("0"))
        self.assertIsNone(overview["Binh"]["last_modified"])

    def test_settlement_debits_each_expense_once(self):
        trip = self._trip()
        first = expenses.create_deferred(500000, self.driver.id, trip.id, "Trip expenses", "2024-03-05")
        self.assertEqual(balance.get_balance("An")["balance"], Decimal("0"))

        settled = balance.settle_trip_expenses(trip.id)
        self.assertEqual([row.id for row in settled], [first.id])
        self.assertTrue(self.db.session.get(Expense, first.id).balance_updated)

        self.assertEqual(balance.settle_trip_expenses(trip.id), [])
        self.assertEqual(balance.get_balance("An")["balance"], Decimal("-500000"))

    def test_balance_equals_credits_minus_debits(self):
        trip = self._trip()
        expenses.create_deferred(200000, self.driver.id, trip.id, "Trip expenses", "2024-03-05")
        balance.credit("An", 1000000, "Advance", "2024-03-01")
        balance.settle_trip_expenses(trip.id)
        expenses.create_immediate(50000, self.driver.id, "Parking", "2024-03-06")
        balance.settle_trip_expenses(trip.id)

        self.assertEqual(balance.get_balance("An")["balance"], Decimal("750000"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
