import importlib
import os
import sys
import unittest
from datetime import date
from decimal import Decimal

from ledger import LedgerValidationError, debts, wages
from models import Customer, SalaryAdjustment, Staff, StaffWage, Trip, TripStatus, Vehicle, WageRole


class WageLedgerTestCase(unittest.TestCase):
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

        RoleEnum = self.app_module.RoleEnum
        User = self.app_module.User
        admin = User(name="Admin", email="admin@example.com", role=RoleEnum.admin)
        admin.set_password("Password!1")
        self.db.session.add(admin)

        self.driver = Staff(full_name="Nguyen Van An", short_name="An")
        self.assistant = Staff(full_name="Le Van Cuong", short_name="Cuong")
        self.customer = Customer(company_name="Hai Phong Logistics")
        self.vehicle = Vehicle(license_plate="29C-12345")
        self.db.session.add_all([self.driver, self.assistant, self.customer, self.vehicle])
        self.db.session.commit()

        self.client = self.app.test_client()
        resp = self.client.post("/api/auth/login", json={"email": "admin@example.com", "password": "Password!1"})
        self.headers = {"Authorization": f"Bearer {resp.get_json()['access_token']}"}

    def tearDown(self):
        self.db.session.remove()
        self.db.drop_all()
        self.ctx.pop()
        os.environ.pop("DATABASE_URL", None)
        if "app" in sys.modules:
            del sys.modules["app"]

    def _trip(self, price, trip_date=date(2024, 3, 5), assistant=True, status=TripStatus.PRICED):
        trip = Trip(
            customer_id=self.customer.id,
            vehicle_id=self.vehicle.id,
            driver_id=self.driver.id,
            assistant_id=self.assistant.id if assistant else None,
            starting_point="Ha Noi",
            ending_point="Hai Phong",
            distance=Decimal("120"),
            trip_date=trip_date,
            status=status,
            price_for_customer=price,
            price_for_staff=price,
        )
        self.db.session.add(trip)
        self.db.session.commit()
        return trip

    def test_save_wages_writes_crew_rows_and_drops_stale(self):
        trip = self._trip(Decimal("2000000"))
        rows = wages.save_wages_for_trip(trip)
        self.assertEqual({row.role for row in rows}, {WageRole.DRIVER, WageRole.ASSISTANT})

        wages.save_wages_for_trip(trip)
        self.assertEqual(StaffWage.query.filter_by(trip_id=trip.id).count(), 2)

        trip.assistant_id = None
        self.db.session.commit()
        wages.save_wages_for_trip(trip)
        remaining = StaffWage.query.filter_by(trip_id=trip.id).all()
        self.assertEqual([(row.staff_id, row.amount) for row in remaining], [(self.driver.id, Decimal("200000"))])

    def test_recalculate_only_touches_priced_trips(self):
        priced = self._trip(Decimal("1000000"))
        self._trip(None, status=TripStatus.WAITING_FOR_PRICE)

        rows = wages.recalculate_staff_wages(self.assistant.id)
        self.assertEqual([row.trip_id for row in rows], [priced.id])
        self.assertEqual(rows[0].amount, Decimal("50000"))

    def test_recalculate_drops_rows_of_replaced_crew(self):
        trip = self._trip(Decimal("2000000"))
        wages.save_wages_for_trip(trip)
        replacement = Staff(full_name="Tran Van Binh", short_name="Binh")
        self.db.session.add(replacement)
        self.db.session.commit()
        trip.assistant_id = replacement.id
        self.db.session.commit()

        rows = wages.recalculate_staff_wages(self.assistant.id)
        self.assertEqual(rows, [])
        self.assertEqual(StaffWage.query.filter_by(staff_id=self.assistant.id).count(), 0)

        rows = wages.recalculate_staff_wages(self.driver.id)
        self.assertEqual([(row.staff_id, row.amount) for row in rows], [(self.driver.id, Decimal("200000"))])
        crew = {row.staff_id for row in StaffWage.query.filter_by(trip_id=trip.id)}
        self.assertEqual(crew, {self.driver.id, replacement.id})

    def test_salary_adjustment_is_upserted_per_month(self):
        wages.save_salary_adjustment(self.driver.id, 2024, 3, -50000, "Advance")
        wages.save_salary_adjustment(self.driver.id, "2024", "3", 25000, " Bonus ")

        rows = SalaryAdjustment.query.filter_by(staff_id=self.driver.id).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].adjustment_amount, Decimal("25000"))
        self.assertEqual(rows[0].reason, "Bonus")

    def test_salary_adjustment_rejects_bad_month(self):
        with self.assertRaises(LedgerValidationError):
            wages.save_salary_adjustment(self.driver.id, 2024, 13, 1000)

    def test_salary_report_combines_trips_and_adjustments(self):
        self._trip(Decimal("1000000"), trip_date=date(2024, 2, 10))
        self._trip(Decimal("3000000"), trip_date=date(2024, 3, 1))
        self._trip(Decimal("9000000"), trip_date=date(2024, 3, 20), status=TripStatus.WAITING_FOR_PRICE)
        wages.save_salary_adjustment(self.driver.id, 2024, 3, -100000, "Advance")

        report = wages.staff_salary_report(self.driver.id)
        self.assertEqual([(row["year"], row["month"]) for row in report["months"]], [(2024, 3), (2024, 2)])
        march = report["months"][0]
        self.assertEqual(march["trip_count"], 2)
        self.assertEqual(march["total_salary"], Decimal("300000"))
        self.assertEqual(march["final_salary"], Decimal("200000"))
        self.assertEqual(report["total_salary"], Decimal("300000"))

    def test_salary_endpoints(self):
        self._trip(Decimal("1000000"), trip_date=date(2024, 2, 10))

        resp = self.client.put(
            f"/api/staff/{self.assistant.id}/salary-adjustments",
            json={"year": 2024, "month": 2, "adjustmentAmount": 10000, "reason": "Night shift"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 200, resp.get_data(as_text=True))

        resp = self.client.get(f"/api/staff/{self.assistant.id}/salary", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        month = resp.get_json()["months"][0]
        self.assertEqual(Decimal(month["finalSalary"]), Decimal("60000"))
        self.assertEqual(month["finalSalaryDisplay"], "60.000 ₫")

        resp = self.client.get(f"/api/staff/{self.assistant.id}/trips", headers=self.headers)
        self.assertEqual(resp.get_json()[0]["role"], "assistant")

        resp = self.client.get("/api/staff/999/salary", headers=self.headers)
        self.assertEqual(resp.status_code, 404)

    def test_balance_endpoints(self):
        resp = self.client.post(
            "/api/balances/An/credit",
            json={"amount": 1000000, "reason": "Advance", "date": "2024-03-01"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 200, resp.get_data(as_text=True))

        resp = self.client.post(
            "/api/expenses",
            json={"amount": 250000, "staffId": self.driver.id, "reason": "Tyre repair", "createdDate": "2024-03-02"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 201, resp.get_data(as_text=True))
        self.assertTrue(resp.get_json()["balanceUpdated"])

        resp = self.client.get("/api/balances/An", headers=self.headers)
        body = resp.get_json()
        self.assertEqual(Decimal(body["balance"]), Decimal("750000"))
        self.assertEqual(body["balanceDisplay"], "750.000 ₫")
        self.assertEqual(len(body["transactions"]), 1)

        resp = self.client.post(
            "/api/balances/An/debit", json={"amount": 0, "reason": "Nothing"}, headers=self.headers
        )
        self.assertEqual(resp.status_code, 400)

        resp = self.client.get("/api/balances/Nobody", headers=self.headers)
        self.assertEqual(resp.status_code, 404)

    def test_debt_endpoints(self):
        debts.accumulate(self.customer.id, 2024, 5000000)

        resp = self.client.post(
            f"/api/debts/customers/{self.customer.id}/payments",
            json={"amount": 2000000, "paymentDate": "2024-04-01"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 201, resp.get_data(as_text=True))

        resp = self.client.get(f"/api/debts/customers/{self.customer.id}", headers=self.headers)
        body = resp.get_json()
        self.assertEqual(Decimal(body["remaining"]), Decimal("3000000"))
        self.assertEqual(body["remainingDisplay"], "3.000.000 ₫")

        resp = self.client.get("/api/debts/summary", headers=self.headers)
        entry = resp.get_json()[0]
        self.assertEqual(Decimal(entry["debtsByYear"]["2024"]["remaining"]), Decimal("3000000"))

        resp = self.client.post(
            f"/api/debts/customers/{self.customer.id}/payments",
            json={"amount": -1, "paymentDate": "2024-04-01"},
            headers=self.headers,
        )
        self.assertEqual(resp.status_code, 400)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
